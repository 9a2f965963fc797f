"""
Task service - business logic for task operations.

Handles task creation (with parent checks), watcher and assignee list
changes, property updates, and delegates tree reads to the forest resolver.
"""
import logging
from typing import Optional, List, Dict, Any, Union

from pydantic import ValidationError

from taskgrove.exceptions import NotFoundError, ValidationFailedError
from taskgrove.forest.references import ReferenceResolver
from taskgrove.forest.resolver import TaskForestResolver
from taskgrove.models.forest_models import TaskForest
from taskgrove.models.task_models import (
    MembershipUpdateResult,
    ResolvedTask,
    TaskCreate,
    TaskPropertiesUpdate,
    TaskRecord,
)
from taskgrove.storage import OrganizationRepository, TaskRepository, UserRepository

logger = logging.getLogger(__name__)


def parse_parent_id(parent_id: Union[int, str, None]) -> Optional[int]:
    """
    Normalize a parent reference. None and "" both mean "no parent".

    Raises:
        ValidationFailedError: Not an integer id
    """
    if parent_id is None or parent_id == "":
        return None
    if isinstance(parent_id, bool):
        raise ValidationFailedError(f"Invalid parent task ID: {parent_id!r}")
    try:
        return int(parent_id)
    except (TypeError, ValueError) as e:
        raise ValidationFailedError(f"Invalid parent task ID: {parent_id!r}") from e


class TaskService:
    """Service for task business logic."""

    def __init__(
        self,
        task_repository: TaskRepository,
        organization_repository: OrganizationRepository,
        user_repository: UserRepository,
        forest_resolver: Optional[TaskForestResolver] = None,
    ):
        self.task_repository = task_repository
        self.organization_repository = organization_repository
        self.user_repository = user_repository
        self.reference_resolver = ReferenceResolver(user_repository)
        self.forest_resolver = forest_resolver or TaskForestResolver(task_repository, user_repository)

    def _resolve_one(self, record: TaskRecord) -> ResolvedTask:
        references = self.reference_resolver.resolve([record])
        resolved = references.tasks.get(record.id)
        if resolved is None:
            raise NotFoundError(f"Creator {record.creator_id} of task {record.id} not found")
        return resolved

    def _get_record(self, task_id: int) -> TaskRecord:
        record = self.task_repository.get_by_id(task_id)
        if record is None:
            raise NotFoundError(f"Task {task_id} not found")
        return record

    def add_task(
        self,
        name: str,
        organization_id: int,
        creator_id: int,
        parent_id: Union[int, str, None] = None,
        is_private: bool = False,
        description: Optional[str] = None,
    ) -> ResolvedTask:
        """
        Create a task.

        Args:
            name: Task name
            organization_id: Owning organization
            creator_id: Authenticated user creating the task
            parent_id: Parent task in the same organization; None or "" for a root
            is_private: Private flag
            description: Optional description

        Returns:
            The created task with users resolved

        Raises:
            ValidationFailedError: Bad input or a parent in another organization
            NotFoundError: Organization or parent task does not exist
        """
        parent = parse_parent_id(parent_id)
        try:
            task_data = TaskCreate(
                name=name,
                organization_id=organization_id,
                parent_id=parent,
                description=description,
                is_private=bool(is_private),
            )
        except ValidationError as e:
            details = e.errors()
            message = details[0].get("msg", "Invalid task") if details else "Invalid task"
            raise ValidationFailedError(message) from e

        if not self.organization_repository.exists(task_data.organization_id):
            raise NotFoundError(f"Organization {task_data.organization_id} not found")

        if task_data.parent_id is not None:
            parent_task = self.task_repository.get_by_id(task_data.parent_id)
            if parent_task is None:
                raise NotFoundError(f"Parent task {task_data.parent_id} not found")
            if parent_task.organization_id != task_data.organization_id:
                raise ValidationFailedError(
                    f"Parent task {task_data.parent_id} belongs to organization "
                    f"{parent_task.organization_id}, not {task_data.organization_id}"
                )

        task_id = self.task_repository.create(
            organization_id=task_data.organization_id,
            creator_id=creator_id,
            name=task_data.name,
            parent_id=task_data.parent_id,
            description=task_data.description,
            is_private=task_data.is_private,
        )
        return self._resolve_one(self._get_record(task_id))

    def add_watcher(self, task_id: int, user_id: int) -> MembershipUpdateResult:
        """Append a watcher; duplicates are allowed."""
        return MembershipUpdateResult(**self.task_repository.push_user("watchers", task_id, user_id))

    def remove_watcher(self, task_id: int, user_id: int) -> MembershipUpdateResult:
        """Remove every occurrence of the user from the watchers."""
        return MembershipUpdateResult(**self.task_repository.pull_user("watchers", task_id, user_id))

    def add_assignee(self, task_id: int, user_id: int) -> MembershipUpdateResult:
        return MembershipUpdateResult(**self.task_repository.push_user("assignees", task_id, user_id))

    def remove_assignee(self, task_id: int, user_id: int) -> MembershipUpdateResult:
        return MembershipUpdateResult(**self.task_repository.pull_user("assignees", task_id, user_id))

    def update_properties(self, task_id: int, properties: Dict[str, Any]) -> ResolvedTask:
        """
        Merge the given properties over the task's current ones.

        Raises:
            NotFoundError: Task does not exist
            ValidationFailedError: Unknown property or empty name
        """
        try:
            update = TaskPropertiesUpdate(**properties)
        except ValidationError as e:
            details = e.errors()
            message = details[0].get("msg", "Invalid properties") if details else "Invalid properties"
            raise ValidationFailedError(message) from e

        self._get_record(task_id)
        self.task_repository.update_properties(
            task_id,
            name=update.name,
            description=update.description,
            is_private=update.is_private,
        )
        return self._resolve_one(self._get_record(task_id))

    def list_tasks(self) -> List[ResolvedTask]:
        """All tasks, with user references resolved in one batch."""
        references = self.reference_resolver.resolve(self.task_repository.list_all())
        for anomaly in references.anomalies:
            logger.warning(anomaly.message, extra={"kind": anomaly.kind.value, "task_id": anomaly.task_id})
        return list(references.tasks.values())

    def get_task_forest(self, organization_id: int, include_private: bool = False) -> TaskForest:
        """Full forest for the organization, anomalies included."""
        return self.forest_resolver.resolve_task_forest(organization_id, include_private=include_private)

    def get_task_tree(self, organization_id: int, include_private: bool = False) -> List[ResolvedTask]:
        """Flat list of every task in the organization's forest."""
        return self.get_task_forest(organization_id, include_private=include_private).tasks
