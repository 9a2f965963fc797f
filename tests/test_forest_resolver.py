"""
Tests for TaskForestResolver.resolve_task_forest.
"""
import random
from collections import Counter

import pytest

from fakes import FailingTaskStore, FakeTaskStore, FakeUserStore, task, user
from taskgrove.exceptions import StorageUnavailableError
from taskgrove.forest.resolver import TaskForestResolver
from taskgrove.models import AnomalyKind


def make_resolver(records, users=None, **kwargs):
    task_store = FakeTaskStore(records, child_edges=kwargs.pop("child_edges", None))
    user_store = FakeUserStore(users if users is not None else [user(i) for i in range(1, 11)])
    return TaskForestResolver(task_store, user_store, **kwargs), task_store, user_store


def random_forest(org, first_id, size, rng):
    """Random cycle-free forest: each task's parent is an earlier task or none."""
    records = []
    for offset in range(size):
        task_id = first_id + offset
        earlier = [r.id for r in records]
        parent = rng.choice(earlier) if earlier and rng.random() < 0.7 else None
        records.append(task(
            task_id,
            org=org,
            parent=parent,
            creator=rng.randint(1, 10),
            watchers=rng.sample(range(1, 11), 2),
            assignees=rng.sample(range(1, 11), 1),
        ))
    return records


class TestForestShape:
    """Every task of a well-formed forest comes back exactly once."""

    @pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
    def test_random_forests_return_each_task_once(self, seed):
        rng = random.Random(seed)
        records = random_forest(1, 1, 40, rng)
        resolver, _, _ = make_resolver(records)
        forest = resolver.resolve_task_forest(1)
        counts = Counter(forest.task_ids)
        assert set(counts) == {r.id for r in records}
        assert all(count == 1 for count in counts.values())
        assert forest.anomalies == []
        assert forest.degraded is False

    def test_root_without_descendants_appears_once(self):
        resolver, _, _ = make_resolver([task(1), task(2), task(3, parent=2)])
        forest = resolver.resolve_task_forest(1)
        assert forest.task_ids.count(1) == 1

    def test_chain_preserves_parents(self):
        resolver, _, _ = make_resolver([task(1), task(2, parent=1), task(3, parent=2)])
        forest = resolver.resolve_task_forest(1)
        assert forest.task_ids == [1, 2, 3]
        assert {t.id: t.parent_id for t in forest.tasks} == {1: None, 2: 1, 3: 2}

    def test_deep_chain(self):
        records = [task(1)] + [task(i, parent=i - 1) for i in range(2, 301)]
        resolver, _, _ = make_resolver(records)
        assert resolver.resolve_task_forest(1).task_ids == list(range(1, 301))

    def test_empty_org(self):
        resolver, task_store, user_store = make_resolver([task(1, org=2)])
        forest = resolver.resolve_task_forest(1)
        assert forest.tasks == []
        assert forest.anomalies == []
        assert user_store.lookups == []
        assert task_store.calls["roots"] == 1

    def test_other_orgs_are_not_included(self):
        resolver, _, _ = make_resolver([task(1), task(2, org=2), task(3, org=2, parent=2)])
        assert resolver.resolve_task_forest(2).task_ids == [2, 3]


class TestMalformedData:
    """Bad data degrades the result instead of failing it."""

    def test_task_that_is_its_own_ancestor_terminates(self):
        """3 and 4 point at each other; nothing reaches them from a root."""
        resolver, _, _ = make_resolver([task(1), task(2, parent=1), task(3, parent=4), task(4, parent=3)])
        forest = resolver.resolve_task_forest(1)
        assert forest.task_ids == [1, 2]
        unreachable = {a.task_id for a in forest.anomalies if a.kind == AnomalyKind.UNREACHABLE}
        assert unreachable == {3, 4}
        assert forest.degraded is False

    def test_cyclic_edge_returned_by_store_is_omitted(self):
        resolver, _, _ = make_resolver(
            [task(1), task(2, parent=1), task(3, parent=2)],
            child_edges={3: [1, 2]},
        )
        forest = resolver.resolve_task_forest(1)
        assert forest.task_ids == [1, 2, 3]
        cycles = [(a.task_id, a.related_id) for a in forest.anomalies if a.kind == AnomalyKind.CYCLE]
        assert cycles == [(1, 3), (2, 3)]

    def test_missing_creator_excludes_task_but_keeps_siblings(self):
        records = [
            task(1, creator=1),
            task(2, parent=1, creator=404),
            task(3, parent=1, creator=2),
            task(4, parent=2, creator=3),
        ]
        resolver, _, _ = make_resolver(records)
        forest = resolver.resolve_task_forest(1)
        assert forest.task_ids == [1, 3, 4]
        assert forest.degraded is True
        missing = [a for a in forest.anomalies if a.kind == AnomalyKind.MISSING_CREATOR]
        assert [a.task_id for a in missing] == [2]

    def test_missing_watcher_does_not_degrade(self):
        resolver, _, _ = make_resolver([task(1, watchers=[1, 77])])
        forest = resolver.resolve_task_forest(1)
        assert [w.id for w in forest.tasks[0].watchers] == [1]
        assert [a.kind for a in forest.anomalies] == [AnomalyKind.MISSING_WATCHER]
        assert forest.degraded is False

    def test_cross_organization_child(self):
        resolver, _, _ = make_resolver([task(1), task(2, org=2, parent=1)])
        forest = resolver.resolve_task_forest(1)
        assert forest.task_ids == [1]
        assert [a.kind for a in forest.anomalies] == [AnomalyKind.CROSS_ORGANIZATION]

        other = resolver.resolve_task_forest(2)
        assert other.task_ids == []
        assert [a.kind for a in other.anomalies] == [AnomalyKind.UNREACHABLE]

    def test_unreachable_scan_can_be_disabled(self):
        resolver, task_store, _ = make_resolver([task(1), task(2, parent=99)], scan_unreachable=False)
        forest = resolver.resolve_task_forest(1)
        assert forest.anomalies == []
        assert task_store.calls["ids"] == 0


class TestBatching:
    """User references are fetched in one call per resolution."""

    def test_fifty_tasks_five_orgs_one_lookup_each(self):
        rng = random.Random(50)
        records = []
        for org in range(1, 6):
            records.extend(random_forest(org, (org - 1) * 10 + 1, 10, rng))
        assert len(records) == 50

        resolver, _, user_store = make_resolver(records)
        for org in range(1, 6):
            before = len(user_store.lookups)
            forest = resolver.resolve_task_forest(org)
            assert len(user_store.lookups) == before + 1
            assert len(forest.tasks) == 10
            assert len(set(user_store.lookups[-1])) == len(user_store.lookups[-1])
        assert len(user_store.lookups) == 5


class TestIncludePrivate:
    """The private flag is accepted but does not filter."""

    @pytest.mark.parametrize("include_private", [False, True])
    def test_private_tasks_returned_either_way(self, include_private):
        records = [task(1), task(2, parent=1, is_private=True), task(3, is_private=True)]
        resolver, _, _ = make_resolver(records)
        forest = resolver.resolve_task_forest(1, include_private=include_private)
        assert forest.task_ids == [1, 2, 3]
        assert forest.include_private is include_private
        assert [t.is_private for t in forest.tasks] == [False, True, True]


class TestErrors:

    @pytest.mark.parametrize("bad_id", [0, -1, "7", None])
    def test_invalid_org_id(self, bad_id):
        resolver, _, _ = make_resolver([])
        with pytest.raises(ValueError):
            resolver.resolve_task_forest(bad_id)

    def test_storage_failure_propagates_as_retryable(self):
        store = FailingTaskStore([task(1)], StorageUnavailableError("database is locked"))
        resolver = TaskForestResolver(store, FakeUserStore([user(1)]))
        with pytest.raises(StorageUnavailableError) as exc_info:
            resolver.resolve_task_forest(1)
        assert exc_info.value.retryable is True
        assert exc_info.value.extensions == {"code": "STORAGE_UNAVAILABLE", "retryable": True}


class TestParallel:

    def test_parallel_matches_sequential(self):
        rng = random.Random(9)
        records = random_forest(1, 1, 60, rng)
        sequential, _, _ = make_resolver(records, max_workers=1)
        parallel, _, _ = make_resolver(records, max_workers=4)
        seq = sequential.resolve_task_forest(1)
        par = parallel.resolve_task_forest(1)
        assert sorted(par.task_ids) == sorted(seq.task_ids)
        assert len(par.task_ids) == len(set(par.task_ids)) == 60
