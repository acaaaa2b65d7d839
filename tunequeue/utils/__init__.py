"""Shared helpers used across the queue, worker and API layers."""
