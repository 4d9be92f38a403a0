"""Cyan - metric reconstruction for fuel-cycle simulation databases."""

__version__ = "0.1.0"
