"""
Dependency injection helpers.
"""
from .services import ServiceContainer, get_services

__all__ = ["ServiceContainer", "get_services"]
