"""Goalverse quota enforcement and notification scheduling service."""

__version__ = "0.1.0"
