"""
Repository for task operations.

Implements the task store used by forest resolution (root scan, child lookup,
id scan) alongside the single-record task mutations.
"""
import logging
from typing import Optional, List, Dict, Any, TYPE_CHECKING

from taskgrove.database import chunked
from taskgrove.models.task_models import TaskRecord

if TYPE_CHECKING:
    from taskgrove.database import TaskGroveDatabase

logger = logging.getLogger(__name__)

TASK_COLUMNS = "id, organization_id, parent_id, creator_id, name, description, is_private"

USER_LIST_TABLES = {
    "watchers": "task_watchers",
    "assignees": "task_assignees",
}


class TaskRepository:
    """Repository for task operations."""

    def __init__(self, db: "TaskGroveDatabase"):
        """Initialize repository with a TaskGroveDatabase instance.

        Args:
            db: TaskGroveDatabase instance for database access
        """
        self.db = db

    def _load_user_lists(self, cursor: Any, task_ids: List[int]) -> Dict[str, Dict[int, List[int]]]:
        """Fetch watcher and assignee ids for a batch of tasks, in list order."""
        lists: Dict[str, Dict[int, List[int]]] = {name: {} for name in USER_LIST_TABLES}
        if not task_ids:
            return lists
        for batch in chunked(task_ids):
            placeholders = ", ".join("?" for _ in batch)
            for name, table in USER_LIST_TABLES.items():
                self.db._execute_with_logging(cursor, f"""
                    SELECT task_id, user_id FROM {table}
                    WHERE task_id IN ({placeholders})
                    ORDER BY id
                """, tuple(batch))
                for row in cursor.fetchall():
                    lists[name].setdefault(row["task_id"], []).append(row["user_id"])
        return lists

    def _fetch_records(self, query: str, params: tuple) -> List[TaskRecord]:
        """Run a task SELECT and attach watcher/assignee ids to every row."""
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            self.db._execute_with_logging(cursor, query, params)
            rows = [dict(row) for row in cursor.fetchall()]
            lists = self._load_user_lists(cursor, [row["id"] for row in rows])
            return [
                TaskRecord(
                    id=row["id"],
                    organization_id=row["organization_id"],
                    parent_id=row["parent_id"],
                    creator_id=row["creator_id"],
                    watcher_ids=lists["watchers"].get(row["id"], []),
                    assignee_ids=lists["assignees"].get(row["id"], []),
                    name=row["name"],
                    description=row["description"],
                    is_private=bool(row["is_private"]),
                )
                for row in rows
            ]
        finally:
            self.db.close(conn)

    def create(
        self,
        organization_id: int,
        creator_id: int,
        name: str,
        parent_id: Optional[int] = None,
        description: Optional[str] = None,
        is_private: bool = False,
    ) -> int:
        """Create a task and return its ID.

        No hierarchy checks happen here; callers validate the parent.
        """
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            task_id = self.db._execute_insert(cursor, """
                INSERT INTO tasks (organization_id, parent_id, creator_id, name, description, is_private)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (organization_id, parent_id, creator_id, name, description, 1 if is_private else 0))
            conn.commit()
            logger.info(f"Created task {task_id} in organization {organization_id}")
            return task_id
        finally:
            self.db.close(conn)

    def get_by_id(self, task_id: int) -> Optional[TaskRecord]:
        """Get a task by ID, or None."""
        records = self._fetch_records(
            f"SELECT {TASK_COLUMNS} FROM tasks WHERE id = ?", (task_id,)
        )
        return records[0] if records else None

    def list_all(self) -> List[TaskRecord]:
        """List every task."""
        return self._fetch_records(f"SELECT {TASK_COLUMNS} FROM tasks ORDER BY id", ())

    def find_roots_by_org(self, organization_id: int) -> List[TaskRecord]:
        """Tasks in the organization that have no parent."""
        return self._fetch_records(f"""
            SELECT {TASK_COLUMNS} FROM tasks
            WHERE organization_id = ? AND parent_id IS NULL
            ORDER BY id
        """, (organization_id,))

    def find_children_by_parent(self, task_id: int) -> List[TaskRecord]:
        """Tasks whose parent is task_id, from any organization."""
        return self._fetch_records(f"""
            SELECT {TASK_COLUMNS} FROM tasks
            WHERE parent_id = ?
            ORDER BY id
        """, (task_id,))

    def list_ids_by_org(self, organization_id: int) -> List[int]:
        """Every task id in the organization."""
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            self.db._execute_with_logging(
                cursor, "SELECT id FROM tasks WHERE organization_id = ? ORDER BY id", (organization_id,)
            )
            return [row["id"] for row in cursor.fetchall()]
        finally:
            self.db.close(conn)

    def update_properties(
        self,
        task_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        is_private: Optional[bool] = None,
    ) -> bool:
        """Overwrite the given properties, leaving the others alone."""
        updates = []
        params: List[Any] = []
        if name is not None:
            updates.append("name = ?")
            params.append(name)
        if description is not None:
            updates.append("description = ?")
            params.append(description)
        if is_private is not None:
            updates.append("is_private = ?")
            params.append(1 if is_private else 0)
        if not updates:
            return False

        updates.append("updated_at = CURRENT_TIMESTAMP")
        params.append(task_id)
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            self.db._execute_with_logging(
                cursor, f"UPDATE tasks SET {', '.join(updates)} WHERE id = ?", tuple(params)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            self.db.close(conn)

    def _task_exists(self, cursor: Any, task_id: int) -> bool:
        self.db._execute_with_logging(cursor, "SELECT 1 FROM tasks WHERE id = ?", (task_id,))
        return cursor.fetchone() is not None

    def push_user(self, list_name: str, task_id: int, user_id: int) -> Dict[str, int]:
        """
        Append a user to a task's watcher or assignee list.

        Returns:
            {"num_matched": 0|1, "num_modified": 0|1}
        """
        table = USER_LIST_TABLES[list_name]
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            if not self._task_exists(cursor, task_id):
                return {"num_matched": 0, "num_modified": 0}
            self.db._execute_insert(
                cursor, f"INSERT INTO {table} (task_id, user_id) VALUES (?, ?)", (task_id, user_id)
            )
            conn.commit()
            logger.info(f"Added user {user_id} to {list_name} of task {task_id}")
            return {"num_matched": 1, "num_modified": 1}
        finally:
            self.db.close(conn)

    def pull_user(self, list_name: str, task_id: int, user_id: int) -> Dict[str, int]:
        """Remove every occurrence of a user from a task's watcher or assignee list."""
        table = USER_LIST_TABLES[list_name]
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            if not self._task_exists(cursor, task_id):
                return {"num_matched": 0, "num_modified": 0}
            self.db._execute_with_logging(
                cursor, f"DELETE FROM {table} WHERE task_id = ? AND user_id = ?", (task_id, user_id)
            )
            modified = 1 if cursor.rowcount > 0 else 0
            conn.commit()
            if modified:
                logger.info(f"Removed user {user_id} from {list_name} of task {task_id}")
            return {"num_matched": 1, "num_modified": modified}
        finally:
            self.db.close(conn)

