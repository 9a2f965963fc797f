"""
Pydantic models for organizations.
"""
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator

from taskgrove.models.user_models import ResolvedUser


class OrganizationCreate(BaseModel):
    """Request model for creating an organization."""
    name: str = Field(..., description="Organization display name", min_length=1)

    @field_validator('name')
    @classmethod
    def validate_not_empty_or_whitespace(cls, v: str) -> str:
        """Validate that name is not empty or only whitespace."""
        if not v or not v.strip():
            raise ValueError("Organization name cannot be empty or contain only whitespace")
        return v.strip()


class OrganizationRecord(BaseModel):
    """Organization row with member and manager ids."""
    id: int
    name: str
    creator_id: Optional[int] = None
    member_ids: List[int] = Field(default_factory=list)
    manager_ids: List[int] = Field(default_factory=list)


class ResolvedOrganization(BaseModel):
    """Organization with its user references resolved."""
    id: int
    name: str
    creator: Optional[ResolvedUser] = None
    members: List[ResolvedUser] = Field(default_factory=list)
    managers: List[ResolvedUser] = Field(default_factory=list)
