"""Core module - logging configuration shared by the service."""

from .logging_config import setup_logging, filter_sensitive_data, truncate_large_data

__all__ = ['setup_logging', 'filter_sensitive_data', 'truncate_large_data']
