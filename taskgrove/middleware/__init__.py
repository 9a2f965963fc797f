"""
HTTP middleware and logging configuration.
"""
from .logging_setup import setup_logging, RequestIDFilter, SafeFormatter
from .setup import setup_middleware

__all__ = ["setup_logging", "RequestIDFilter", "SafeFormatter", "setup_middleware"]
