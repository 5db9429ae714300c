"""Logging configuration for apim_operator."""

from apim_operator.logging.config import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
