"""SwipeMatch: mutual-matching and conversation engine."""

__version__ = "1.0.0"
