"""Incremental AI translation of flat string resources."""

__version__ = "0.1.0"
