"""Core domain primitives for tunequeue."""
