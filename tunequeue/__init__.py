"""tunequeue: queued Spotify media fetching with live progress."""

__version__ = "0.3.0"
