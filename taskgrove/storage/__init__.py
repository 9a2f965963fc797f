"""
SQLite-backed repositories.
"""
from .task_repository import TaskRepository
from .user_repository import UserRepository
from .organization_repository import OrganizationRepository

__all__ = ["TaskRepository", "UserRepository", "OrganizationRepository"]
