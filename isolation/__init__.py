"""Isolation game service: session lifecycle, move selection and play analytics."""

__version__ = "1.0.0"
