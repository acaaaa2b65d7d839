"""Adapters for the metadata catalog and the media fetcher."""
