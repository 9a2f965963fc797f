"""
Task forest resolution for one organization.

Pipeline: roots -> descendant closure -> user references -> flat list.
The operation is read-only. Data problems are reported as anomalies on the
returned TaskForest; only storage failures propagate.
"""
import os
import time
import logging
from typing import Optional

from taskgrove.forest.closure import DescendantClosureBuilder
from taskgrove.forest.flatten import ForestFlattener
from taskgrove.forest.ports import TaskStore, UserStore
from taskgrove.forest.references import ReferenceResolver
from taskgrove.forest.roots import RootSelector
from taskgrove.models.forest_models import TaskForest
from taskgrove.monitoring import record_forest_resolution
from taskgrove.tracing import trace_span, add_span_attribute

logger = logging.getLogger(__name__)

FOREST_WORKERS = int(os.getenv("TASKGROVE_FOREST_WORKERS", "1"))
SCAN_UNREACHABLE = os.getenv("TASKGROVE_FOREST_SCAN_UNREACHABLE", "true").lower() == "true"


class TaskForestResolver:
    """Materializes the full task forest of an organization."""

    def __init__(
        self,
        task_store: TaskStore,
        user_store: UserStore,
        max_workers: Optional[int] = None,
        scan_unreachable: Optional[bool] = None,
    ):
        """
        Args:
            task_store: Task lookups (roots, children, ids by organization)
            user_store: Batched user lookup
            max_workers: Parallel root expansion; TASKGROVE_FOREST_WORKERS by default
            scan_unreachable: Report tasks no root reaches; TASKGROVE_FOREST_SCAN_UNREACHABLE by default
        """
        self.root_selector = RootSelector(task_store)
        self.closure_builder = DescendantClosureBuilder(
            task_store, max_workers=max_workers if max_workers is not None else FOREST_WORKERS
        )
        self.reference_resolver = ReferenceResolver(user_store)
        self.flattener = ForestFlattener()
        self.scan_unreachable = SCAN_UNREACHABLE if scan_unreachable is None else scan_unreachable

    def resolve_task_forest(self, organization_id: int, include_private: bool = False) -> TaskForest:
        """
        Resolve every task of the organization into one flat list.

        Args:
            organization_id: Organization to resolve
            include_private: Accepted for API compatibility; private tasks are
                returned either way

        Returns:
            TaskForest with tasks, anomalies and the degraded flag

        Raises:
            ValueError: organization_id is not a positive integer
            StorageUnavailableError: a store call failed; safe to retry
        """
        start_time = time.time()
        with trace_span(
            "forest.resolve",
            attributes={"forest.organization_id": organization_id, "forest.include_private": include_private},
        ):
            try:
                forest = self._resolve(organization_id, include_private)
            except Exception:
                record_forest_resolution("error", time.time() - start_time)
                raise

            duration = time.time() - start_time
            add_span_attribute("forest.tasks", len(forest.tasks))
            add_span_attribute("forest.anomalies", len(forest.anomalies))
            add_span_attribute("forest.degraded", forest.degraded)

        for anomaly in forest.anomalies:
            logger.warning(
                anomaly.message,
                extra={
                    "kind": anomaly.kind.value,
                    "task_id": anomaly.task_id,
                    "organization_id": anomaly.organization_id,
                }
            )
        record_forest_resolution(
            "success",
            duration,
            task_count=len(forest.tasks),
            anomaly_kinds=tuple(anomaly.kind.value for anomaly in forest.anomalies),
        )
        logger.info(
            f"Resolved forest for organization {organization_id}: {len(forest.tasks)} tasks, "
            f"{len(forest.anomalies)} anomalies in {duration:.4f}s"
        )
        return forest

    def _resolve(self, organization_id: int, include_private: bool) -> TaskForest:
        if include_private:
            logger.debug("include_private requested; private tasks are not filtered either way")

        with trace_span("forest.roots"):
            roots = self.root_selector.select(organization_id)
            add_span_attribute("forest.roots", len(roots))

        with trace_span("forest.closure", {"forest.workers": self.closure_builder.max_workers}):
            closure = self.closure_builder.build(organization_id, roots)
            anomalies = list(closure.anomalies)
            if self.scan_unreachable:
                anomalies.extend(
                    self.closure_builder.scan_unreachable(organization_id, closure.visited_ids)
                )

        with trace_span("forest.references"):
            references = self.reference_resolver.resolve(closure.records)
            anomalies.extend(references.anomalies)

        with trace_span("forest.flatten"):
            tasks = self.flattener.flatten(closure.closures, references)

        return TaskForest(
            organization_id=organization_id,
            include_private=include_private,
            tasks=tasks,
            anomalies=anomalies,
        )
