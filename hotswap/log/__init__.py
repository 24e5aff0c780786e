"""
Logging module for the application.
This module provides the console setup and the optional Loki log shipping handler.
"""

from .setup import setup_logging

__all__ = ["setup_logging"]
