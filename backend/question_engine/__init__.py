"""Adaptive question-selection engine."""

__version__ = "1.0.0"
