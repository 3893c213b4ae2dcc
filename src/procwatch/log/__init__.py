"""
Logging module for procwatch.
This module provides the console logging setup shared by the command line tool.
"""

from .setup import setup_logging

__all__ = ["setup_logging"]
