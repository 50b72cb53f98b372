"""RetroFlow real-time retrospective backend."""

__version__ = "1.0.0"
