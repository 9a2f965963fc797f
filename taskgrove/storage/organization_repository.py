"""
Repository for organization operations.
"""
import logging
from typing import Optional, List, Dict, TYPE_CHECKING

from taskgrove.models.org_models import OrganizationRecord

if TYPE_CHECKING:
    from taskgrove.database import TaskGroveDatabase

logger = logging.getLogger(__name__)

ROLE_TABLES = {
    "member": "organization_members",
    "manager": "organization_managers",
}


class OrganizationRepository:
    """Repository for organization operations."""

    def __init__(self, db: "TaskGroveDatabase"):
        """
        Initialize OrganizationRepository.

        Args:
            db: TaskGroveDatabase instance for database access
        """
        self.db = db

    def create(self, name: str, creator_id: Optional[int] = None) -> int:
        """
        Create a new organization and return its ID.

        The creator, when given, is recorded as the first manager.

        Args:
            name: Organization name
            creator_id: Creating user

        Returns:
            Organization ID
        """
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            organization_id = self.db._execute_insert(cursor, """
                INSERT INTO organizations (name, creator_id)
                VALUES (?, ?)
            """, (name, creator_id))
            if creator_id is not None:
                self.db._execute_insert(cursor, """
                    INSERT INTO organization_managers (organization_id, user_id)
                    VALUES (?, ?)
                """, (organization_id, creator_id))
            conn.commit()
            logger.info(f"Created organization {organization_id}: {name}")
            return organization_id
        finally:
            self.db.close(conn)

    def _load_roles(self, cursor, organization_ids: List[int]) -> Dict[str, Dict[int, List[int]]]:
        roles: Dict[str, Dict[int, List[int]]] = {role: {} for role in ROLE_TABLES}
        if not organization_ids:
            return roles
        placeholders = ", ".join("?" for _ in organization_ids)
        for role, table in ROLE_TABLES.items():
            self.db._execute_with_logging(cursor, f"""
                SELECT organization_id, user_id FROM {table}
                WHERE organization_id IN ({placeholders})
                ORDER BY id
            """, tuple(organization_ids))
            for row in cursor.fetchall():
                roles[role].setdefault(row["organization_id"], []).append(row["user_id"])
        return roles

    def _fetch(self, where: str = "", params: tuple = ()) -> List[OrganizationRecord]:
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            self.db._execute_with_logging(
                cursor, f"SELECT id, name, creator_id FROM organizations {where} ORDER BY id", params
            )
            rows = [dict(row) for row in cursor.fetchall()]
            roles = self._load_roles(cursor, [row["id"] for row in rows])
            return [
                OrganizationRecord(
                    id=row["id"],
                    name=row["name"],
                    creator_id=row["creator_id"],
                    member_ids=roles["member"].get(row["id"], []),
                    manager_ids=roles["manager"].get(row["id"], []),
                )
                for row in rows
            ]
        finally:
            self.db.close(conn)

    def get_by_id(self, organization_id: int) -> Optional[OrganizationRecord]:
        """
        Get an organization by ID.

        Returns:
            Organization record or None if not found
        """
        records = self._fetch("WHERE id = ?", (organization_id,))
        return records[0] if records else None

    def list_all(self) -> List[OrganizationRecord]:
        """List all organizations."""
        return self._fetch()

    def exists(self, organization_id: int) -> bool:
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            self.db._execute_with_logging(
                cursor, "SELECT 1 FROM organizations WHERE id = ?", (organization_id,)
            )
            return cursor.fetchone() is not None
        finally:
            self.db.close(conn)

    def add_user(self, organization_id: int, user_id: int, role: str) -> bool:
        """
        Add a user to an organization as member or manager.

        Returns:
            True if added, False if the user already held that role
        """
        table = ROLE_TABLES[role]
        conn = self.db._get_connection()
        try:
            cursor = conn.cursor()
            self.db._execute_with_logging(cursor, f"""
                INSERT OR IGNORE INTO {table} (organization_id, user_id)
                VALUES (?, ?)
            """, (organization_id, user_id))
            added = cursor.rowcount > 0
            conn.commit()
            if added:
                logger.info(f"Added user {user_id} as {role} of organization {organization_id}")
            return added
        finally:
            self.db.close(conn)
