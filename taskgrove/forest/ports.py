"""
Store interfaces the forest pipeline depends on.

TaskRepository and UserRepository satisfy these; tests use in-memory fakes.
"""
from typing import Dict, Iterable, List, Protocol

from taskgrove.models.task_models import TaskRecord
from taskgrove.models.user_models import UserRecord


class TaskStore(Protocol):
    def find_roots_by_org(self, organization_id: int) -> List[TaskRecord]:
        """Tasks in the organization with no parent."""
        ...

    def find_children_by_parent(self, task_id: int) -> List[TaskRecord]:
        """Tasks whose parent is task_id, in store order."""
        ...

    def list_ids_by_org(self, organization_id: int) -> List[int]:
        """Every task id in the organization."""
        ...


class UserStore(Protocol):
    def find_by_ids(self, user_ids: Iterable[int]) -> Dict[int, UserRecord]:
        """Batched lookup. Missing ids are absent from the result."""
        ...
