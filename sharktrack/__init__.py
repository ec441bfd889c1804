"""Shark position tracking service: feed sync, track queries and SST enrichment."""

__version__ = "0.1.0"
