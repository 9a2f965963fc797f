"""
Flattening: merge per-root closures into one duplicate-free list.
"""
from typing import Iterable, List, Set

from taskgrove.forest.closure import RootClosure
from taskgrove.forest.references import ReferenceResult
from taskgrove.models.task_models import ResolvedTask


class ForestFlattener:
    """Emits each resolved task once: every root, then its descendants."""

    def flatten(self, closures: Iterable[RootClosure], references: ReferenceResult) -> List[ResolvedTask]:
        tasks: List[ResolvedTask] = []
        emitted: Set[int] = set()
        for closure in closures:
            for record in closure.records:
                if record.id in emitted:
                    continue
                # Omitted tasks have no resolved copy
                resolved = references.tasks.get(record.id)
                if resolved is None:
                    continue
                emitted.add(record.id)
                tasks.append(resolved)
        return tasks
