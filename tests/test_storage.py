"""
Tests for the SQLite database and repositories.
"""
import sqlite3
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from taskgrove.exceptions import StorageUnavailableError
from taskgrove.storage import OrganizationRepository, TaskRepository, UserRepository


@pytest.fixture
def users(temp_db):
    return UserRepository(temp_db)


@pytest.fixture
def orgs(temp_db):
    return OrganizationRepository(temp_db)


@pytest.fixture
def tasks(temp_db):
    return TaskRepository(temp_db)


class TestSchema:

    def test_tables_created(self, temp_db):
        conn = temp_db._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            tables = {row["name"] for row in cursor.fetchall()}
        finally:
            temp_db.close(conn)
        assert {
            "users", "user_sessions", "organizations", "organization_members",
            "organization_managers", "tasks", "task_watchers", "task_assignees",
        } <= tables

    def test_schema_init_is_idempotent(self, temp_db):
        temp_db._init_schema()
        temp_db._init_schema()

    def test_operational_error_becomes_storage_unavailable(self, temp_db):
        conn = temp_db._get_connection()
        try:
            cursor = conn.cursor()
            with pytest.raises(StorageUnavailableError) as exc_info:
                temp_db._execute_with_logging(cursor, "SELECT * FROM no_such_table")
            assert exc_info.value.retryable is True
        finally:
            temp_db.close(conn)

    def test_integrity_error_is_not_wrapped(self, temp_db, users):
        users.create("a@example.com", "hash")
        conn = temp_db._get_connection()
        try:
            cursor = conn.cursor()
            with pytest.raises(sqlite3.IntegrityError):
                temp_db._execute_with_logging(
                    cursor, "INSERT INTO users (email, password_hash) VALUES (?, ?)", ("a@example.com", "h")
                )
        finally:
            temp_db.close(conn)

    def test_connect_failure_becomes_storage_unavailable(self, temp_db):
        with patch("taskgrove.database.sqlite3.connect", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(StorageUnavailableError):
                temp_db._get_connection()


class TestUserRepository:

    def test_create_and_get(self, users):
        user_id = users.create("a@example.com", "hash")
        record = users.get_by_id(user_id)
        assert record.email == "a@example.com"
        assert record.token_version == 0
        assert users.get_by_email("a@example.com").id == user_id
        assert users.get_by_email("nobody@example.com") is None

    def test_duplicate_email(self, users):
        users.create("a@example.com", "hash")
        with pytest.raises(ValueError, match="already exists"):
            users.create("a@example.com", "hash")

    def test_find_by_ids_skips_missing(self, users):
        a = users.create("a@example.com", "hash")
        b = users.create("b@example.com", "hash")
        found = users.find_by_ids([b, 999, a, b])
        assert set(found) == {a, b}
        assert found[b].email == "b@example.com"
        assert users.find_by_ids([]) == {}

    def test_duplicate_email_racing_the_existence_check(self, users):
        users.create("a@example.com", "hash")
        with patch.object(users, "get_by_email", return_value=None):
            with pytest.raises(ValueError, match="already exists"):
                users.create("a@example.com", "hash")

    def test_find_by_ids_beyond_one_in_clause(self, users):
        a = users.create("a@example.com", "hash")
        b = users.create("b@example.com", "hash")
        ids = list(range(1000, 2200)) + [b, a]
        found = users.find_by_ids(ids)
        assert set(found) == {a, b}

    def test_find_by_ids_splits_into_batches(self, users, monkeypatch):
        monkeypatch.setattr("taskgrove.database.IN_CLAUSE_CHUNK_SIZE", 2)
        created = [users.create(f"u{i}@example.com", "hash") for i in range(5)]
        with patch.object(users.db, "_execute_with_logging", wraps=users.db._execute_with_logging) as execute:
            found = users.find_by_ids(created)
        assert set(found) == set(created)
        assert execute.call_count == 3

    def test_list(self, users):
        for i in range(3):
            users.create(f"u{i}@example.com", "hash")
        assert [u.email for u in users.list()] == ["u0@example.com", "u1@example.com", "u2@example.com"]
        assert len(users.list(limit=2)) == 2
        assert [u.email for u in users.list(offset=2)] == ["u2@example.com"]

    def test_sessions(self, users):
        user_id = users.create("a@example.com", "hash")
        future = datetime.now(timezone.utc) + timedelta(hours=1)
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        users.create_session(user_id, "live", "access", 0, future)
        users.create_session(user_id, "stale", "access", 0, past)

        session = users.get_session("live", "access")
        assert session["user_id"] == user_id
        assert users.get_session("live", "refresh") is None
        assert users.get_session("stale", "access") is None

        assert users.clean_expired_sessions() == 1
        assert users.delete_session("live") is True
        assert users.get_session("live", "access") is None

    def test_bump_token_version_drops_sessions(self, users):
        user_id = users.create("a@example.com", "hash")
        users.create_session(user_id, "t", "refresh", 0, datetime.now(timezone.utc) + timedelta(days=1))
        assert users.bump_token_version(user_id) == 1
        assert users.get_by_id(user_id).token_version == 1
        assert users.get_session("t", "refresh") is None

    def test_bump_token_version_unknown_user(self, users):
        with pytest.raises(ValueError):
            users.bump_token_version(12345)


class TestOrganizationRepository:

    def test_creator_is_manager(self, orgs, users):
        creator = users.create("a@example.com", "hash")
        org_id = orgs.create("Acme", creator_id=creator)
        record = orgs.get_by_id(org_id)
        assert record.name == "Acme"
        assert record.creator_id == creator
        assert record.manager_ids == [creator]
        assert record.member_ids == []

    def test_add_user_once(self, orgs, users):
        member = users.create("m@example.com", "hash")
        org_id = orgs.create("Acme")
        assert orgs.add_user(org_id, member, "member") is True
        assert orgs.add_user(org_id, member, "member") is False
        assert orgs.get_by_id(org_id).member_ids == [member]

    def test_exists_and_list(self, orgs):
        a = orgs.create("A")
        b = orgs.create("B")
        assert orgs.exists(a)
        assert not orgs.exists(999)
        assert [o.id for o in orgs.list_all()] == [a, b]
        assert orgs.get_by_id(999) is None


class TestTaskRepository:

    def test_create_and_get(self, tasks):
        task_id = tasks.create(1, 7, "Write docs", description="all of them", is_private=True)
        record = tasks.get_by_id(task_id)
        assert record.organization_id == 1
        assert record.creator_id == 7
        assert record.parent_id is None
        assert record.description == "all of them"
        assert record.is_private is True
        assert tasks.get_by_id(999) is None

    def test_roots_children_and_ids(self, tasks):
        root = tasks.create(1, 1, "root")
        child_a = tasks.create(1, 1, "a", parent_id=root)
        child_b = tasks.create(1, 1, "b", parent_id=root)
        other = tasks.create(2, 1, "other root")
        assert [r.id for r in tasks.find_roots_by_org(1)] == [root]
        assert [r.id for r in tasks.find_children_by_parent(root)] == [child_a, child_b]
        assert tasks.list_ids_by_org(1) == [root, child_a, child_b]
        assert tasks.list_ids_by_org(2) == [other]
        assert tasks.find_roots_by_org(3) == []

    def test_watchers_keep_order_and_duplicates(self, tasks):
        task_id = tasks.create(1, 1, "t")
        for user_id in (3, 2, 3):
            assert tasks.push_user("watchers", task_id, user_id) == {"num_matched": 1, "num_modified": 1}
        assert tasks.get_by_id(task_id).watcher_ids == [3, 2, 3]

        assert tasks.pull_user("watchers", task_id, 3) == {"num_matched": 1, "num_modified": 1}
        assert tasks.get_by_id(task_id).watcher_ids == [2]
        assert tasks.pull_user("watchers", task_id, 3) == {"num_matched": 1, "num_modified": 0}

    def test_list_all_loads_user_lists_in_batches(self, tasks, monkeypatch):
        monkeypatch.setattr("taskgrove.database.IN_CLAUSE_CHUNK_SIZE", 2)
        task_ids = [tasks.create(1, 1, f"t{i}") for i in range(5)]
        for task_id in task_ids:
            tasks.push_user("watchers", task_id, task_id + 100)
            tasks.push_user("watchers", task_id, task_id + 200)
        tasks.push_user("assignees", task_ids[4], 7)

        records = {record.id: record for record in tasks.list_all()}
        for task_id in task_ids:
            assert records[task_id].watcher_ids == [task_id + 100, task_id + 200]
        assert records[task_ids[4]].assignee_ids == [7]
        assert records[task_ids[0]].assignee_ids == []

    def test_list_changes_on_missing_task(self, tasks):
        assert tasks.push_user("assignees", 999, 1) == {"num_matched": 0, "num_modified": 0}
        assert tasks.pull_user("assignees", 999, 1) == {"num_matched": 0, "num_modified": 0}

    def test_update_properties_merges(self, tasks):
        task_id = tasks.create(1, 1, "old", description="keep me")
        assert tasks.update_properties(task_id, name="new") is True
        record = tasks.get_by_id(task_id)
        assert record.name == "new"
        assert record.description == "keep me"
        assert tasks.update_properties(task_id) is False
        assert tasks.update_properties(999, is_private=True) is False
