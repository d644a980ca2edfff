"""Satellite tracking control for Hamlib rotctld antenna rotators."""

__version__ = "0.1.0"
