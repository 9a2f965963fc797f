"""
Pydantic models for records, requests and forest results.
"""
from .user_models import UserRecord, ResolvedUser, SignupRequest, LoginRequest, TokenPair
from .org_models import OrganizationCreate, OrganizationRecord, ResolvedOrganization
from .task_models import (
    TaskRecord,
    ResolvedTask,
    TaskCreate,
    TaskPropertiesUpdate,
    MembershipUpdateResult,
)
from .forest_models import AnomalyKind, ForestAnomaly, TaskForest

__all__ = [
    "UserRecord",
    "ResolvedUser",
    "SignupRequest",
    "LoginRequest",
    "TokenPair",
    "OrganizationCreate",
    "OrganizationRecord",
    "ResolvedOrganization",
    "TaskRecord",
    "ResolvedTask",
    "TaskCreate",
    "TaskPropertiesUpdate",
    "MembershipUpdateResult",
    "AnomalyKind",
    "ForestAnomaly",
    "TaskForest",
]
