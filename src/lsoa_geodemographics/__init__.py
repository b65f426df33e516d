"""Geodemographic classification of small census areas (LSOAs)."""

__version__ = "0.1.0"
