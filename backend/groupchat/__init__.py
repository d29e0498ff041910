"""Real-time group chat broker."""

__version__ = "0.1.0"
