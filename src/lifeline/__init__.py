"""Lifeline: import personal history exports into one validated event model."""

__version__ = "0.1.0"
