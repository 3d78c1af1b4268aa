"""
Observability module.

Provides logging configuration for the client and its store backends.
"""

from entitystore.observability.logger import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
