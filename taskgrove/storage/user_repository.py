"""
Repository for users and their session tokens.

Token values are never stored; only their SHA-256 hashes are.
"""
import sqlite3
import logging
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Iterable, TYPE_CHECKING

from taskgrove.database import chunked
from taskgrove.models.user_models import UserRecord

if TYPE_CHECKING:
    from taskgrove.database import TaskGroveDatabase

logger = logging.getLogger(__name__)

USER_COLUMNS = "id, email, password_hash, token_version, created_at, last_login_at"


def format_timestamp(value: datetime) -> str:
    """Format a datetime the way SQLite's CURRENT_TIMESTAMP does (UTC)."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


class UserRepository:
    """Repository for user and session operations."""

    def __init__(self, db: "TaskGroveDatabase"):
        self.db = db

    @staticmethod
    def _row_to_record(row: Any) -> UserRecord:
        return UserRecord(
            id=row["id"],
            email=row["email"],
            password_hash=row["password_hash"],
            token_version=row["token_version"],
            created_at=row["created_at"],
            last_login_at=row["last_login_at"],
        )

    def create(self, email: str, password_hash: str) -> int:
        """
        Create a user account.

        Args:
            email: Unique, already normalized email address
            password_hash: bcrypt hash of the password

        Returns:
            User ID of created user

        Raises:
            ValueError: If the email is already registered
        """
        if self.get_by_email(email):
            raise ValueError(f"Email '{email}' already exists")

        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            try:
                user_id = self.db._execute_insert(cursor, """
                    INSERT INTO users (email, password_hash)
                    VALUES (?, ?)
                """, (email, password_hash))
            except sqlite3.IntegrityError as e:
                # Lost a race with a concurrent signup for the same email
                raise ValueError(f"Email '{email}' already exists") from e
            conn.commit()
            logger.info(f"Created user {user_id}")
            return user_id
        finally:
            self.db.close(conn)

    def _get_one(self, where: str, params: tuple) -> Optional[UserRecord]:
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            self.db._execute_with_logging(
                cursor, f"SELECT {USER_COLUMNS} FROM users WHERE {where}", params
            )
            row = cursor.fetchone()
            return self._row_to_record(row) if row else None
        finally:
            self.db.close(conn)

    def get_by_id(self, user_id: int) -> Optional[UserRecord]:
        """Get user by ID."""
        return self._get_one("id = ?", (user_id,))

    def get_by_email(self, email: str) -> Optional[UserRecord]:
        """Get user by email."""
        return self._get_one("email = ?", (email,))

    def find_by_ids(self, user_ids: Iterable[int]) -> Dict[int, UserRecord]:
        """
        Batched lookup by id.

        Args:
            user_ids: Ids to look up; duplicates are fine

        Returns:
            Mapping of id to record. Ids with no user are simply absent.
        """
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        found: Dict[int, UserRecord] = {}
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            for batch in chunked(ids):
                placeholders = ", ".join("?" for _ in batch)
                self.db._execute_with_logging(
                    cursor,
                    f"SELECT {USER_COLUMNS} FROM users WHERE id IN ({placeholders})",
                    tuple(batch),
                )
                for row in cursor.fetchall():
                    record = self._row_to_record(row)
                    found[record.id] = record
            return found
        finally:
            self.db.close(conn)

    def list(self, limit: int = 100, offset: int = 0) -> List[UserRecord]:
        """List users, oldest first."""
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            self.db._execute_with_logging(cursor, f"""
                SELECT {USER_COLUMNS} FROM users
                ORDER BY id
                LIMIT ? OFFSET ?
            """, (limit, offset))
            return [self._row_to_record(row) for row in cursor.fetchall()]
        finally:
            self.db.close(conn)

    def touch_last_login(self, user_id: int) -> None:
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            self.db._execute_with_logging(cursor, """
                UPDATE users SET last_login_at = CURRENT_TIMESTAMP WHERE id = ?
            """, (user_id,))
            conn.commit()
        finally:
            self.db.close(conn)

    def bump_token_version(self, user_id: int) -> int:
        """
        Increment the user's token version and drop their stored sessions.

        Returns:
            The new token version

        Raises:
            ValueError: If the user does not exist
        """
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            self.db._execute_with_logging(cursor, """
                UPDATE users
                SET token_version = token_version + 1, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            """, (user_id,))
            if cursor.rowcount == 0:
                raise ValueError(f"User {user_id} not found")
            self.db._execute_with_logging(
                cursor, "DELETE FROM user_sessions WHERE user_id = ?", (user_id,)
            )
            self.db._execute_with_logging(
                cursor, "SELECT token_version FROM users WHERE id = ?", (user_id,)
            )
            version = cursor.fetchone()["token_version"]
            conn.commit()
            logger.info(f"Invalidated all sessions for user {user_id} (token_version={version})")
            return version
        finally:
            self.db.close(conn)

    # Session tokens

    def create_session(
        self,
        user_id: int,
        token_hash: str,
        token_type: str,
        token_version: int,
        expires_at: datetime,
    ) -> int:
        """Store a hashed access or refresh token."""
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            session_id = self.db._execute_insert(cursor, """
                INSERT INTO user_sessions (user_id, token_hash, token_type, token_version, expires_at)
                VALUES (?, ?, ?, ?, ?)
            """, (user_id, token_hash, token_type, token_version, format_timestamp(expires_at)))
            conn.commit()
            return session_id
        finally:
            self.db.close(conn)

    def get_session(self, token_hash: str, token_type: str) -> Optional[Dict[str, Any]]:
        """Get an unexpired session by token hash and mark it used."""
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            self.db._execute_with_logging(cursor, """
                SELECT id, user_id, token_type, token_version, expires_at, created_at
                FROM user_sessions
                WHERE token_hash = ? AND token_type = ? AND expires_at > CURRENT_TIMESTAMP
            """, (token_hash, token_type))
            row = cursor.fetchone()
            if not row:
                return None
            self.db._execute_with_logging(cursor, """
                UPDATE user_sessions SET last_used_at = CURRENT_TIMESTAMP WHERE id = ?
            """, (row["id"],))
            conn.commit()
            return dict(row)
        finally:
            self.db.close(conn)

    def delete_session(self, token_hash: str) -> bool:
        """Delete a session."""
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            self.db._execute_with_logging(
                cursor, "DELETE FROM user_sessions WHERE token_hash = ?", (token_hash,)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            self.db.close(conn)

    def clean_expired_sessions(self) -> int:
        """Delete expired sessions. Returns number of deleted sessions."""
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            self.db._execute_with_logging(
                cursor, "DELETE FROM user_sessions WHERE expires_at <= CURRENT_TIMESTAMP"
            )
            deleted_count = cursor.rowcount
            conn.commit()
            if deleted_count > 0:
                logger.info(f"Cleaned up {deleted_count} expired sessions")
            return deleted_count
        finally:
            self.db.close(conn)
