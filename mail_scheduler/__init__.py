"""Scheduled email dispatcher: timezone-aware queue processing over SMTP."""

__version__ = "0.1.0"
