"""Respirometry rate estimation: automatic detection of linear, max, min and interval rates."""

__version__ = "0.1.0"
