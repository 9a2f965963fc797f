"""
Service layer for business logic.
"""
from .organization_service import OrganizationService
from .task_service import TaskService

__all__ = ["OrganizationService", "TaskService"]
