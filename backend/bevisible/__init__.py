"""Brand visibility tracking: account scheduling and daily report pipeline."""

__version__ = "1.0.0"
