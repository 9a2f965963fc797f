"""
Unit tests for TaskService.
Tests business logic in isolation with mocked repositories.
"""
from unittest.mock import MagicMock

import pytest

from taskgrove.exceptions import NotFoundError, ValidationFailedError
from taskgrove.models import TaskRecord, UserRecord
from taskgrove.services.task_service import TaskService, parse_parent_id


def record(task_id, org=1, parent=None, creator=1, **kwargs):
    return TaskRecord(
        id=task_id, organization_id=org, parent_id=parent, creator_id=creator,
        name=kwargs.pop("name", f"task-{task_id}"), **kwargs
    )


@pytest.fixture
def task_repository():
    return MagicMock()


@pytest.fixture
def organization_repository():
    repo = MagicMock()
    repo.exists.return_value = True
    return repo


@pytest.fixture
def user_repository():
    repo = MagicMock()
    repo.find_by_ids.side_effect = lambda ids: {
        i: UserRecord(id=i, email=f"u{i}@example.com") for i in ids if i < 100
    }
    return repo


@pytest.fixture
def forest_resolver():
    return MagicMock()


@pytest.fixture
def task_service(task_repository, organization_repository, user_repository, forest_resolver):
    return TaskService(task_repository, organization_repository, user_repository, forest_resolver=forest_resolver)


class TestParseParentId:

    @pytest.mark.parametrize("value,expected", [(None, None), ("", None), ("12", 12), (5, 5)])
    def test_valid(self, value, expected):
        assert parse_parent_id(value) == expected

    @pytest.mark.parametrize("value", ["abc", "1.5", True])
    def test_invalid(self, value):
        with pytest.raises(ValidationFailedError):
            parse_parent_id(value)


class TestAddTask:
    """Tests for add_task."""

    def test_add_root_task(self, task_service, task_repository):
        # Setup
        task_repository.create.return_value = 10
        task_repository.get_by_id.return_value = record(10, creator=4, name="Plan")

        # Execute
        result = task_service.add_task("  Plan  ", organization_id=1, creator_id=4)

        # Verify
        task_repository.create.assert_called_once_with(
            organization_id=1, creator_id=4, name="Plan",
            parent_id=None, description=None, is_private=False,
        )
        assert result.id == 10
        assert result.creator.id == 4

    def test_empty_string_parent_means_root(self, task_service, task_repository):
        task_repository.create.return_value = 10
        task_repository.get_by_id.return_value = record(10)

        task_service.add_task("Plan", organization_id=1, creator_id=1, parent_id="")

        assert task_repository.create.call_args.kwargs["parent_id"] is None

    def test_add_child_task(self, task_service, task_repository):
        task_repository.get_by_id.side_effect = lambda task_id: {
            3: record(3),
            11: record(11, parent=3),
        }.get(task_id)
        task_repository.create.return_value = 11

        result = task_service.add_task("Child", organization_id=1, creator_id=1, parent_id="3")

        assert task_repository.create.call_args.kwargs["parent_id"] == 3
        assert result.parent_id == 3

    def test_unknown_org(self, task_service, organization_repository, task_repository):
        organization_repository.exists.return_value = False
        with pytest.raises(NotFoundError, match="Organization 1 not found"):
            task_service.add_task("Plan", organization_id=1, creator_id=1)
        task_repository.create.assert_not_called()

    def test_unknown_parent(self, task_service, task_repository):
        task_repository.get_by_id.return_value = None
        with pytest.raises(NotFoundError, match="Parent task 3 not found"):
            task_service.add_task("Plan", organization_id=1, creator_id=1, parent_id=3)
        task_repository.create.assert_not_called()

    def test_parent_in_other_org(self, task_service, task_repository):
        task_repository.get_by_id.return_value = record(3, org=2)
        with pytest.raises(ValidationFailedError, match="belongs to organization 2"):
            task_service.add_task("Plan", organization_id=1, creator_id=1, parent_id=3)
        task_repository.create.assert_not_called()

    def test_blank_name(self, task_service, task_repository):
        with pytest.raises(ValueError):
            task_service.add_task("   ", organization_id=1, creator_id=1)
        task_repository.create.assert_not_called()


class TestWatchersAndAssignees:

    def test_add_watcher(self, task_service, task_repository):
        task_repository.push_user.return_value = {"num_matched": 1, "num_modified": 1}
        result = task_service.add_watcher(5, 7)
        task_repository.push_user.assert_called_once_with("watchers", 5, 7)
        assert (result.num_matched, result.num_modified) == (1, 1)

    def test_remove_watcher(self, task_service, task_repository):
        task_repository.pull_user.return_value = {"num_matched": 1, "num_modified": 0}
        result = task_service.remove_watcher(5, 7)
        task_repository.pull_user.assert_called_once_with("watchers", 5, 7)
        assert result.num_modified == 0

    def test_add_and_remove_assignee(self, task_service, task_repository):
        task_repository.push_user.return_value = {"num_matched": 0, "num_modified": 0}
        task_repository.pull_user.return_value = {"num_matched": 0, "num_modified": 0}
        assert task_service.add_assignee(5, 7).num_matched == 0
        assert task_service.remove_assignee(5, 7).num_matched == 0
        task_repository.push_user.assert_called_once_with("assignees", 5, 7)
        task_repository.pull_user.assert_called_once_with("assignees", 5, 7)


class TestUpdateProperties:

    def test_merge(self, task_service, task_repository):
        task_repository.get_by_id.return_value = record(5, name="new", description="kept")
        result = task_service.update_properties(5, {"name": " new "})
        task_repository.update_properties.assert_called_once_with(
            5, name="new", description=None, is_private=None
        )
        assert result.name == "new"
        assert result.description == "kept"

    def test_unknown_property(self, task_service, task_repository):
        with pytest.raises(ValidationFailedError):
            task_service.update_properties(5, {"colour": "red"})
        task_repository.update_properties.assert_not_called()

    def test_missing_task(self, task_service, task_repository):
        task_repository.get_by_id.return_value = None
        with pytest.raises(NotFoundError):
            task_service.update_properties(5, {"name": "x"})


class TestReads:

    def test_list_tasks_one_lookup(self, task_service, task_repository, user_repository):
        task_repository.list_all.return_value = [
            record(1, creator=1, watcher_ids=[2]),
            record(2, org=2, creator=3),
            record(3, creator=404),
        ]
        result = task_service.list_tasks()
        assert [t.id for t in result] == [1, 2]
        user_repository.find_by_ids.assert_called_once()

    def test_get_task_tree_delegates(self, task_service, forest_resolver):
        forest_resolver.resolve_task_forest.return_value.tasks = ["sentinel"]
        assert task_service.get_task_tree(4, include_private=True) == ["sentinel"]
        forest_resolver.resolve_task_forest.assert_called_once_with(4, include_private=True)
