"""YouTube slop channel detector."""

__version__ = "0.1.0"
