"""UniMedia: weighted grade average tracker and shared study-plan store."""

__version__ = "0.1.0"
