"""
Models produced by task forest resolution.
"""
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field

from taskgrove.models.task_models import ResolvedTask


class AnomalyKind(str, Enum):
    """Kinds of data problems found while resolving a forest."""
    CYCLE = "cycle"
    SHARED_DESCENDANT = "shared_descendant"
    CROSS_ORGANIZATION = "cross_organization"
    UNREACHABLE = "unreachable"
    MISSING_CREATOR = "missing_creator"
    MISSING_WATCHER = "missing_watcher"
    MISSING_ASSIGNEE = "missing_assignee"


# A task with this kind of anomaly is left out of the result
OMITTING_KINDS = frozenset({AnomalyKind.MISSING_CREATOR})


class ForestAnomaly(BaseModel):
    """A diagnostic recorded instead of failing the resolution."""
    kind: AnomalyKind
    organization_id: int
    task_id: int
    related_id: Optional[int] = Field(
        None, description="Other task (edge endpoint) or user id involved"
    )
    message: str

    @property
    def omits_task(self) -> bool:
        return self.kind in OMITTING_KINDS


class TaskForest(BaseModel):
    """Flattened forest for one organization."""
    organization_id: int
    include_private: bool = False
    tasks: List[ResolvedTask] = Field(default_factory=list)
    anomalies: List[ForestAnomaly] = Field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """True when at least one task had to be left out."""
        return any(anomaly.omits_task for anomaly in self.anomalies)

    @property
    def task_ids(self) -> List[int]:
        return [task.id for task in self.tasks]
