"""Courier assignment, delivery lifecycle and live tracking engine."""

__version__ = "0.1.0"
