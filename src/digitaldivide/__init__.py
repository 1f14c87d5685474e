"""Narrative tour through global internet connectivity, 2000-2024."""

__version__ = "0.1.0"
