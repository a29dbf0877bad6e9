"""ComicGate - resilient retrieval layer for a mirrored, encrypted comic API."""

__version__ = "0.1.0"
