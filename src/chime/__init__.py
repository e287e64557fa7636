"""Chime - personal assistant reminder scheduler."""

__version__ = "0.1.0"
