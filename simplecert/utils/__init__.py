"""Utilities for simplecert."""

from .files import atomic_write, ensure_directory
from .logging import setup_logging

__all__ = ["atomic_write", "ensure_directory", "setup_logging"]
