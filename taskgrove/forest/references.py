"""
Reference resolution: replace creator, watcher and assignee ids with users.

All ids of one resolution go to the user store in a single batched call.
"""
import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from pydantic import BaseModel, Field

from taskgrove.forest.ports import UserStore
from taskgrove.models.forest_models import AnomalyKind, ForestAnomaly
from taskgrove.models.task_models import ResolvedTask, TaskRecord
from taskgrove.models.user_models import ResolvedUser, UserRecord

logger = logging.getLogger(__name__)


class ReferenceResult(BaseModel):
    """Resolved tasks keyed by id, in first-seen order."""
    tasks: Dict[int, ResolvedTask] = Field(default_factory=dict)
    omitted_ids: Set[int] = Field(default_factory=set)
    anomalies: List[ForestAnomaly] = Field(default_factory=list)


def collect_user_ids(records: Iterable[TaskRecord]) -> List[int]:
    """Distinct user ids referenced by the records, first-seen order."""
    seen: Dict[int, None] = {}
    for record in records:
        seen.setdefault(record.creator_id, None)
        for user_id in record.watcher_ids:
            seen.setdefault(user_id, None)
        for user_id in record.assignee_ids:
            seen.setdefault(user_id, None)
    return list(seen)


class ReferenceResolver:
    """Turns TaskRecords into ResolvedTasks using one user lookup."""

    def __init__(self, user_store: UserStore):
        self.user_store = user_store

    def resolve(self, records: Iterable[TaskRecord]) -> ReferenceResult:
        """
        Resolve user references for every record.

        A record whose creator cannot be found is omitted. Watchers and
        assignees that cannot be found are dropped from their list; repeated
        ids keep only their first position. Records repeating an earlier id
        are ignored.
        """
        unique: Dict[int, TaskRecord] = {}
        for record in records:
            unique.setdefault(record.id, record)

        result = ReferenceResult()
        if not unique:
            return result

        users = self.user_store.find_by_ids(collect_user_ids(unique.values()))

        for record in unique.values():
            creator = users.get(record.creator_id)
            if creator is None:
                result.omitted_ids.add(record.id)
                result.anomalies.append(ForestAnomaly(
                    kind=AnomalyKind.MISSING_CREATOR,
                    organization_id=record.organization_id,
                    task_id=record.id,
                    related_id=record.creator_id,
                    message=f"Creator {record.creator_id} of task {record.id} does not exist; task omitted",
                ))
                continue

            watchers, missing_watchers = self._resolve_list(record.watcher_ids, users)
            assignees, missing_assignees = self._resolve_list(record.assignee_ids, users)
            result.anomalies.extend(
                self._missing(record, AnomalyKind.MISSING_WATCHER, "Watcher", missing_watchers)
            )
            result.anomalies.extend(
                self._missing(record, AnomalyKind.MISSING_ASSIGNEE, "Assignee", missing_assignees)
            )

            result.tasks[record.id] = ResolvedTask(
                id=record.id,
                parent_id=record.parent_id,
                organization_id=record.organization_id,
                creator=ResolvedUser.from_record(creator),
                watchers=watchers,
                assignees=assignees,
                name=record.name,
                description=record.description,
                is_private=record.is_private,
            )
        return result

    @staticmethod
    def _resolve_list(
        user_ids: List[int], users: Dict[int, UserRecord]
    ) -> Tuple[List[ResolvedUser], List[int]]:
        resolved: List[ResolvedUser] = []
        missing: List[int] = []
        seen: Set[int] = set()
        for user_id in user_ids:
            if user_id in seen:
                continue
            seen.add(user_id)
            user: Optional[UserRecord] = users.get(user_id)
            if user is None:
                missing.append(user_id)
            else:
                resolved.append(ResolvedUser.from_record(user))
        return resolved, missing

    @staticmethod
    def _missing(record: TaskRecord, kind: AnomalyKind, label: str, user_ids: List[int]) -> List[ForestAnomaly]:
        return [
            ForestAnomaly(
                kind=kind,
                organization_id=record.organization_id,
                task_id=record.id,
                related_id=user_id,
                message=f"{label} {user_id} of task {record.id} does not exist; dropped",
            )
            for user_id in user_ids
        ]
