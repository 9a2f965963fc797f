"""
Organization service - business logic for organization operations.
"""
import logging
from typing import Optional, List, Dict

from pydantic import ValidationError

from taskgrove.exceptions import NotFoundError, ValidationFailedError
from taskgrove.models.org_models import OrganizationCreate, OrganizationRecord, ResolvedOrganization
from taskgrove.models.user_models import ResolvedUser, UserRecord
from taskgrove.storage import OrganizationRepository, UserRepository

logger = logging.getLogger(__name__)


class OrganizationService:
    """Service for organization business logic."""

    def __init__(
        self,
        organization_repository: OrganizationRepository,
        user_repository: UserRepository,
    ):
        """
        Initialize organization service with repository dependencies.

        Args:
            organization_repository: OrganizationRepository for organization rows
            user_repository: UserRepository for resolving creator, members and managers
        """
        self.organization_repository = organization_repository
        self.user_repository = user_repository

    def create_org(self, name: str, creator_id: int) -> ResolvedOrganization:
        """
        Create a new organization. The creator becomes its first manager.

        Raises:
            ValidationFailedError: Empty name
            NotFoundError: Creator does not exist
        """
        try:
            organization_data = OrganizationCreate(name=name)
        except ValidationError as e:
            raise ValidationFailedError("Organization name cannot be empty or contain only whitespace") from e

        if self.user_repository.get_by_id(creator_id) is None:
            raise NotFoundError(f"User {creator_id} not found")

        organization_id = self.organization_repository.create(
            name=organization_data.name,
            creator_id=creator_id,
        )
        created = self.get_organization(organization_id)
        if created is None:
            logger.error(f"Organization {organization_id} was created but could not be retrieved")
            raise NotFoundError(f"Organization {organization_id} was created but could not be retrieved")
        return created

    def get_organization(self, organization_id: int) -> Optional[ResolvedOrganization]:
        """Get an organization by ID."""
        record = self.organization_repository.get_by_id(organization_id)
        if record is None:
            return None
        return self._resolve([record])[0]

    def list_orgs(self) -> List[ResolvedOrganization]:
        """List all organizations with their users resolved in one lookup."""
        return self._resolve(self.organization_repository.list_all())

    def add_member(self, organization_id: int, user_id: int) -> bool:
        """Add a user as member. Returns False if already a member."""
        self._check_exists(organization_id, user_id)
        return self.organization_repository.add_user(organization_id, user_id, "member")

    def add_manager(self, organization_id: int, user_id: int) -> bool:
        """Add a user as manager. Returns False if already a manager."""
        self._check_exists(organization_id, user_id)
        return self.organization_repository.add_user(organization_id, user_id, "manager")

    def _check_exists(self, organization_id: int, user_id: int) -> None:
        if not self.organization_repository.exists(organization_id):
            raise NotFoundError(f"Organization {organization_id} not found")
        if self.user_repository.get_by_id(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")

    def _resolve(self, records: List[OrganizationRecord]) -> List[ResolvedOrganization]:
        if not records:
            return []
        user_ids: Dict[int, None] = {}
        for record in records:
            if record.creator_id is not None:
                user_ids.setdefault(record.creator_id, None)
            for user_id in record.member_ids + record.manager_ids:
                user_ids.setdefault(user_id, None)
        users = self.user_repository.find_by_ids(list(user_ids))

        def lookup(ids: List[int]) -> List[ResolvedUser]:
            return [ResolvedUser.from_record(users[user_id]) for user_id in ids if user_id in users]

        def creator_of(record: OrganizationRecord) -> Optional[ResolvedUser]:
            user: Optional[UserRecord] = users.get(record.creator_id) if record.creator_id is not None else None
            return ResolvedUser.from_record(user) if user else None

        return [
            ResolvedOrganization(
                id=record.id,
                name=record.name,
                creator=creator_of(record),
                members=lookup(record.member_ids),
                managers=lookup(record.manager_ids),
            )
            for record in records
        ]
