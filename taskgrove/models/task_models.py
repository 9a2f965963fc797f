"""
Pydantic models for task records and task mutations.
"""
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, field_validator

from taskgrove.models.user_models import ResolvedUser


class TaskRecord(BaseModel):
    """Task row as held by the task store, user references still as ids."""
    model_config = ConfigDict(frozen=True)

    id: int
    organization_id: int
    parent_id: Optional[int] = None
    creator_id: int
    watcher_ids: List[int] = Field(default_factory=list)
    assignee_ids: List[int] = Field(default_factory=list)
    name: str
    description: Optional[str] = None
    is_private: bool = False


class ResolvedTask(BaseModel):
    """Task with creator, watchers and assignees resolved to users."""
    id: int
    parent_id: Optional[int] = None
    organization_id: int
    creator: ResolvedUser
    watchers: List[ResolvedUser] = Field(default_factory=list)
    assignees: List[ResolvedUser] = Field(default_factory=list)
    name: str
    description: Optional[str] = None
    is_private: bool = False


class TaskCreate(BaseModel):
    """Request model for adding a task."""
    name: str = Field(..., description="Task name", min_length=1)
    organization_id: int = Field(..., description="Owning organization", gt=0)
    parent_id: Optional[int] = Field(None, description="Parent task in the same organization", gt=0)
    description: Optional[str] = Field(None, description="Optional description")
    is_private: bool = Field(False, description="Private flag (stored, not yet enforced on reads)")

    @field_validator('name')
    @classmethod
    def validate_not_empty_or_whitespace(cls, v: str) -> str:
        """Validate that name is not empty or only whitespace."""
        if not v or not v.strip():
            raise ValueError("Task name cannot be empty or contain only whitespace")
        return v.strip()


class TaskPropertiesUpdate(BaseModel):
    """Partial update of task properties; unset fields keep their value."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    description: Optional[str] = None
    is_private: Optional[bool] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            if not v.strip():
                raise ValueError("Task name cannot be empty or contain only whitespace")
            return v.strip()
        return v


class MembershipUpdateResult(BaseModel):
    """Outcome of a watcher/assignee list change."""
    num_matched: int
    num_modified: int
