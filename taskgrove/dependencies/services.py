"""
Service container for dependency injection.
Centralizes service initialization and provides access to all services.
"""
import logging
from typing import Optional

from taskgrove.auth.service import AuthService
from taskgrove.database import TaskGroveDatabase
from taskgrove.forest.resolver import TaskForestResolver
from taskgrove.services import OrganizationService, TaskService
from taskgrove.storage import OrganizationRepository, TaskRepository, UserRepository

logger = logging.getLogger(__name__)

# Global service instance
_service_instance: Optional['ServiceContainer'] = None


class ServiceContainer:
    """Container for all application services."""

    def __init__(self, db: Optional[TaskGroveDatabase] = None):
        """
        Args:
            db: Database to use; by default one at TASKGROVE_DB_PATH
        """
        self.db = db or TaskGroveDatabase()

        self.user_repository = UserRepository(self.db)
        self.organization_repository = OrganizationRepository(self.db)
        self.task_repository = TaskRepository(self.db)

        self.forest_resolver = TaskForestResolver(self.task_repository, self.user_repository)
        self.auth_service = AuthService(self.user_repository)
        self.organization_service = OrganizationService(
            self.organization_repository, self.user_repository
        )
        self.task_service = TaskService(
            self.task_repository,
            self.organization_repository,
            self.user_repository,
            forest_resolver=self.forest_resolver,
        )
        logger.info(f"Services initialized with database at {self.db.db_path}")


def get_services() -> ServiceContainer:
    """Get the global service container instance."""
    global _service_instance
    if _service_instance is None:
        _service_instance = ServiceContainer()
    return _service_instance
