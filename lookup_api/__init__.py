"""Lookup Portal API - session-authenticated lookup dashboard backend."""

__version__ = "1.0.0"
