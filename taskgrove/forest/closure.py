"""
Descendant closure: breadth-first expansion of every root through
parent -> child edges.

The visited set is shared by all roots of one resolution, so a task is
expanded at most once no matter how many paths lead to it. Edges that would
revisit a task are dropped and reported: as a cycle when the task is an
ancestor of the node being expanded, otherwise as a shared descendant.
"""
import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Set, Tuple

from pydantic import BaseModel, Field

from taskgrove.forest.ports import TaskStore
from taskgrove.models.forest_models import AnomalyKind, ForestAnomaly
from taskgrove.models.task_models import TaskRecord

logger = logging.getLogger(__name__)


class VisitedSet:
    """Set of task ids, safe to share between expansion threads."""

    def __init__(self, initial: Iterable[int] = ()):
        self._ids: Set[int] = set(initial)
        self._lock = threading.Lock()

    def add_if_absent(self, task_id: int) -> bool:
        """Add the id; False if it was already present."""
        with self._lock:
            if task_id in self._ids:
                return False
            self._ids.add(task_id)
            return True

    def __contains__(self, task_id: int) -> bool:
        with self._lock:
            return task_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    def snapshot(self) -> Set[int]:
        with self._lock:
            return set(self._ids)


class RootClosure(BaseModel):
    """A root and its descendants in breadth-first order."""
    root: TaskRecord
    descendants: List[TaskRecord] = Field(default_factory=list)

    @property
    def records(self) -> List[TaskRecord]:
        return [self.root] + self.descendants


class ClosureResult(BaseModel):
    """Closures for all roots, plus what went wrong building them."""
    closures: List[RootClosure] = Field(default_factory=list)
    anomalies: List[ForestAnomaly] = Field(default_factory=list)
    visited_ids: Set[int] = Field(default_factory=set)

    @property
    def records(self) -> List[TaskRecord]:
        """Every reached record, roots first within each closure."""
        return [record for closure in self.closures for record in closure.records]


def _is_ancestor(candidate_id: int, node_id: int, discovered_from: Dict[int, Optional[int]]) -> bool:
    """Walk node_id's discovery chain up to its root looking for candidate_id."""
    current: Optional[int] = node_id
    steps = 0
    while current is not None and steps <= len(discovered_from):
        if current == candidate_id:
            return True
        current = discovered_from.get(current)
        steps += 1
    return False


class DescendantClosureBuilder:
    """Computes per-root descendant sets for one organization."""

    def __init__(self, task_store: TaskStore, max_workers: int = 1):
        """
        Args:
            task_store: Store providing child lookups
            max_workers: Roots expanded in parallel when greater than 1
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.task_store = task_store
        self.max_workers = max_workers

    def build(self, organization_id: int, roots: List[TaskRecord]) -> ClosureResult:
        """
        Expand every root breadth-first.

        Roots are registered as visited before any expansion starts. With
        several workers, which root claims a shared descendant depends on
        scheduling; the set of returned tasks does not.
        """
        visited = VisitedSet()
        unique_roots = [root for root in roots if visited.add_if_absent(root.id)]

        if self.max_workers > 1 and len(unique_roots) > 1:
            with ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="forest-closure"
            ) as executor:
                expanded = list(executor.map(
                    lambda root: self._expand(organization_id, root, visited), unique_roots
                ))
        else:
            expanded = [self._expand(organization_id, root, visited) for root in unique_roots]

        result = ClosureResult(visited_ids=visited.snapshot())
        for root, (descendants, anomalies) in zip(unique_roots, expanded):
            result.closures.append(RootClosure(root=root, descendants=descendants))
            result.anomalies.extend(anomalies)
        return result

    def _expand(
        self,
        organization_id: int,
        root: TaskRecord,
        visited: VisitedSet,
    ) -> Tuple[List[TaskRecord], List[ForestAnomaly]]:
        descendants: List[TaskRecord] = []
        anomalies: List[ForestAnomaly] = []
        discovered_from: Dict[int, Optional[int]] = {root.id: None}
        queue = deque([root])

        while queue:
            node = queue.popleft()
            for child in self.task_store.find_children_by_parent(node.id):
                if child.organization_id != organization_id:
                    anomalies.append(ForestAnomaly(
                        kind=AnomalyKind.CROSS_ORGANIZATION,
                        organization_id=organization_id,
                        task_id=child.id,
                        related_id=node.id,
                        message=(
                            f"Task {child.id} (organization {child.organization_id}) is a child "
                            f"of task {node.id}; edge dropped"
                        ),
                    ))
                    continue

                if not visited.add_if_absent(child.id):
                    if _is_ancestor(child.id, node.id, discovered_from):
                        anomalies.append(ForestAnomaly(
                            kind=AnomalyKind.CYCLE,
                            organization_id=organization_id,
                            task_id=child.id,
                            related_id=node.id,
                            message=f"Task {child.id} is an ancestor of task {node.id}; cyclic edge dropped",
                        ))
                    else:
                        anomalies.append(ForestAnomaly(
                            kind=AnomalyKind.SHARED_DESCENDANT,
                            organization_id=organization_id,
                            task_id=child.id,
                            related_id=node.id,
                            message=f"Task {child.id} was already reached before task {node.id}; edge dropped",
                        ))
                    continue

                discovered_from[child.id] = node.id
                descendants.append(child)
                queue.append(child)

        logger.debug(f"Root {root.id} has {len(descendants)} descendants")
        return descendants, anomalies

    def scan_unreachable(self, organization_id: int, visited_ids: Set[int]) -> List[ForestAnomaly]:
        """
        Report organization tasks the closure never reached.

        These are tasks hanging off a missing parent, off a parent in another
        organization, or inside a parent cycle with no root.
        """
        anomalies = []
        for task_id in self.task_store.list_ids_by_org(organization_id):
            if task_id not in visited_ids:
                anomalies.append(ForestAnomaly(
                    kind=AnomalyKind.UNREACHABLE,
                    organization_id=organization_id,
                    task_id=task_id,
                    message=f"Task {task_id} is not reachable from any root of organization {organization_id}",
                ))
        return anomalies
