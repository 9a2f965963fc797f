"""
Database schema and connection management for taskgrove.
"""
import sqlite3
import os
import time
from typing import Iterator, List, Optional, Tuple
import logging

from opentelemetry import trace

from taskgrove.exceptions import StorageUnavailableError
from taskgrove.tracing import trace_span, add_span_attribute

logger = logging.getLogger(__name__)

# Query performance threshold (seconds) - queries slower than this will be logged
QUERY_SLOW_THRESHOLD = float(os.getenv("DB_QUERY_SLOW_THRESHOLD", "0.1"))
ENABLE_QUERY_LOGGING = os.getenv("DB_ENABLE_QUERY_LOGGING", "true").lower() == "true"

DEFAULT_DB_PATH = "./data/taskgrove.db"

# Ids bound per IN (...) list; SQLite caps the number of host parameters
IN_CLAUSE_CHUNK_SIZE = 500


def chunked(values: List, size: Optional[int] = None) -> Iterator[List]:
    """Split ids into batches small enough for one IN (...) list."""
    size = size or IN_CLAUSE_CHUNK_SIZE
    for start in range(0, len(values), size):
        yield values[start:start + size]


class TaskGroveDatabase:
    """SQLite database holding users, sessions, organizations and tasks."""

    db_type = "sqlite"

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize database connection and create schema if needed.

        Args:
            db_path: Path to the SQLite file. If None, TASKGROVE_DB_PATH is used.
        """
        self.db_path = db_path or os.getenv("TASKGROVE_DB_PATH", DEFAULT_DB_PATH)
        self._ensure_db_directory()
        self._init_schema()

    def _ensure_db_directory(self):
        """Ensure database directory exists."""
        db_dir = os.path.dirname(os.path.abspath(self.db_path))
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Open a new connection. Each repository call owns its connection."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=5.0)
        except sqlite3.OperationalError as e:
            raise StorageUnavailableError(f"Could not open database at {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def close(self, conn: sqlite3.Connection) -> None:
        """Close a connection obtained from _get_connection."""
        try:
            conn.close()
        except sqlite3.Error:
            logger.warning("Failed to close database connection", exc_info=True)

    def _execute_with_logging(self, cursor, query: str, params: Tuple = None):
        """
        Execute a query with performance logging and tracing.

        Args:
            cursor: Database cursor
            query: SQL query string
            params: Query parameters

        Returns:
            Cursor after execution

        Raises:
            StorageUnavailableError: database locked or unreadable
        """
        query_type = "unknown"
        query_upper = query.strip().upper()
        for candidate in ("SELECT", "INSERT", "UPDATE", "DELETE", "CREATE"):
            if query_upper.startswith(candidate):
                query_type = candidate.lower()
                break

        # Simple heuristic, good enough for span names
        table_name = "unknown"
        for keyword in ["FROM", "INTO", "EXISTS", "UPDATE"]:
            if keyword in query_upper:
                parts = query_upper.split(keyword, 1)
                if len(parts) > 1 and parts[1].split():
                    table_name = parts[1].split()[0].strip().lower()
                    break

        start_time = time.time()
        with trace_span(
            f"db.{query_type}",
            attributes={
                "db.system": self.db_type,
                "db.statement.type": query_type,
                "db.sql.table": table_name,
                "db.operation": query_type,
            },
            kind=trace.SpanKind.CLIENT
        ):
            try:
                if params is None:
                    result = cursor.execute(query)
                else:
                    result = cursor.execute(query, params)
            except sqlite3.OperationalError as e:
                duration = time.time() - start_time
                logger.error(
                    f"Query failed after {duration:.4f}s: {query[:200]}",
                    exc_info=True
                )
                raise StorageUnavailableError(f"Storage operation failed: {e}") from e
            except sqlite3.Error:
                duration = time.time() - start_time
                logger.error(
                    f"Query failed after {duration:.4f}s: {query[:200]}",
                    exc_info=True
                )
                raise

            duration = time.time() - start_time
            add_span_attribute("db.duration_ms", duration * 1000)

            if ENABLE_QUERY_LOGGING and duration >= QUERY_SLOW_THRESHOLD:
                query_preview = query[:200] + "..." if len(query) > 200 else query
                logger.warning(
                    f"Slow query: {duration:.4f}s - {query_preview}",
                    extra={"duration": duration, "params_count": len(params) if params else 0}
                )
                add_span_attribute("db.slow_query", True)

            return result

    def _execute_insert(self, cursor, query: str, params: Tuple = None) -> int:
        """Execute an INSERT query and return the inserted row ID."""
        self._execute_with_logging(cursor, query, params)
        return cursor.lastrowid

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_connection()
        try:
            cursor = conn.cursor()

            self._execute_with_logging(cursor, """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    token_version INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    last_login_at TIMESTAMP
                )
            """)

            # Access and refresh tokens share a table; only hashes are stored
            self._execute_with_logging(cursor, """
                CREATE TABLE IF NOT EXISTS user_sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    token_hash TEXT NOT NULL UNIQUE,
                    token_type TEXT NOT NULL CHECK(token_type IN ('access', 'refresh')),
                    token_version INTEGER NOT NULL,
                    expires_at TIMESTAMP NOT NULL,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    last_used_at TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
                )
            """)
            self._execute_with_logging(cursor, """
                CREATE INDEX IF NOT EXISTS idx_user_sessions_user
                ON user_sessions(user_id)
            """)

            self._execute_with_logging(cursor, """
                CREATE TABLE IF NOT EXISTS organizations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    creator_id INTEGER,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (creator_id) REFERENCES users(id) ON DELETE SET NULL
                )
            """)

            for table in ("organization_members", "organization_managers"):
                self._execute_with_logging(cursor, f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        organization_id INTEGER NOT NULL,
                        user_id INTEGER NOT NULL,
                        joined_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                        UNIQUE(organization_id, user_id),
                        FOREIGN KEY (organization_id) REFERENCES organizations(id) ON DELETE CASCADE
                    )
                """)

            # parent_id and creator_id are weak references: no foreign keys,
            # so the forest shape is not enforced here
            self._execute_with_logging(cursor, """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    organization_id INTEGER NOT NULL,
                    parent_id INTEGER,
                    creator_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT,
                    is_private INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """)
            self._execute_with_logging(cursor, """
                CREATE INDEX IF NOT EXISTS idx_tasks_org_parent
                ON tasks(organization_id, parent_id)
            """)
            self._execute_with_logging(cursor, """
                CREATE INDEX IF NOT EXISTS idx_tasks_parent
                ON tasks(parent_id)
            """)

            # Row id order is list order; duplicates are allowed
            for table in ("task_watchers", "task_assignees"):
                self._execute_with_logging(cursor, f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        task_id INTEGER NOT NULL,
                        user_id INTEGER NOT NULL,
                        FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
                    )
                """)
                self._execute_with_logging(cursor, f"""
                    CREATE INDEX IF NOT EXISTS idx_{table}_task
                    ON {table}(task_id)
                """)

            conn.commit()
            logger.debug(f"Schema ready at {self.db_path}")
        finally:
            self.close(conn)
