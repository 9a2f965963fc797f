"""
Root selection: the parentless tasks of one organization.
"""
import logging
from typing import List

from taskgrove.forest.ports import TaskStore
from taskgrove.models.task_models import TaskRecord

logger = logging.getLogger(__name__)


def validate_organization_id(organization_id: int) -> int:
    """Organization ids are positive integers; anything else is a caller error."""
    if isinstance(organization_id, bool) or not isinstance(organization_id, int):
        raise ValueError(f"Organization ID must be an integer, got {organization_id!r}")
    if organization_id <= 0:
        raise ValueError(f"Organization ID must be positive, got {organization_id}")
    return organization_id


class RootSelector:
    """Selects the roots of an organization's task forest."""

    def __init__(self, task_store: TaskStore):
        self.task_store = task_store

    def select(self, organization_id: int) -> List[TaskRecord]:
        """
        Return the organization's root tasks in store order.

        An unknown organization simply has no roots. Records that do not
        actually match (a store returning a child or another organization's
        task) are dropped, as are repeated ids.
        """
        validate_organization_id(organization_id)
        roots: List[TaskRecord] = []
        seen = set()
        for record in self.task_store.find_roots_by_org(organization_id):
            if record.parent_id is not None or record.organization_id != organization_id:
                logger.debug(
                    f"Ignoring task {record.id} returned as a root of organization {organization_id}"
                )
                continue
            if record.id in seen:
                continue
            seen.add(record.id)
            roots.append(record)
        return roots
