"""draftsnap: a sidecar snapshot store for scratch files."""

__version__ = "0.1.0"
