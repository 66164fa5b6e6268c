"""Utility functions."""

from .logging import JSONFormatter, NodeContextFilter, TextFormatter, setup_logging

__all__ = ["JSONFormatter", "NodeContextFilter", "TextFormatter", "setup_logging"]
