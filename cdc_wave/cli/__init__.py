"""
CLI module for CDC Wave.

Provides the ``cdc-wave`` console script entry point.
"""

from .commands import main

__all__ = ["main"]
