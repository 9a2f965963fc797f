"""
GraphQL schema for taskgrove.

Every field except signup, login and refreshTokens requires an access token
sent as "Authorization: Bearer <token>".
"""
import logging
from contextlib import contextmanager
from typing import Optional, List

import strawberry
from fastapi import Depends, Request
from graphql import GraphQLError
from strawberry.fastapi import BaseContext
from strawberry.types import Info

from taskgrove.auth.context import AuthContext, require_authentication
from taskgrove.dependencies.services import ServiceContainer, get_services
from taskgrove.exceptions import TaskGroveError
from taskgrove import models

logger = logging.getLogger(__name__)


class TaskGroveContext(BaseContext):
    """Per-request GraphQL context: the services and who is calling."""

    def __init__(self, services: ServiceContainer, auth: Optional[AuthContext]):
        super().__init__()
        self.services = services
        self.auth = auth

    def require_user(self) -> int:
        with graphql_errors():
            return require_authentication(self.auth).user_id


def bearer_token(request: Request) -> Optional[str]:
    """Extract the token from an "Authorization: Bearer ..." header."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_context(
    request: Request,
    services: ServiceContainer = Depends(get_services),
) -> TaskGroveContext:
    """Build the GraphQL context; an invalid token just means anonymous."""
    auth = services.auth_service.authenticate(bearer_token(request))
    return TaskGroveContext(services=services, auth=auth)


@contextmanager
def graphql_errors():
    """Report domain and input errors as GraphQL errors with a code extension."""
    try:
        yield
    except TaskGroveError as e:
        raise GraphQLError(str(e), extensions=e.extensions) from e
    except ValueError as e:
        raise GraphQLError(str(e), extensions={"code": "BAD_USER_INPUT", "retryable": False}) from e


def parse_id(value: strawberry.ID, label: str = "ID") -> int:
    """Convert a GraphQL ID argument to an integer key."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise GraphQLError(
            f"Invalid {label}: {value!r}", extensions={"code": "BAD_USER_INPUT", "retryable": False}
        )
    if parsed <= 0:
        raise GraphQLError(
            f"Invalid {label}: {value!r}", extensions={"code": "BAD_USER_INPUT", "retryable": False}
        )
    return parsed


@strawberry.type
class User:
    """User GraphQL type."""
    id: strawberry.ID
    email: str

    @classmethod
    def from_model(cls, user: models.ResolvedUser) -> "User":
        return cls(id=strawberry.ID(str(user.id)), email=user.email)


@strawberry.type
class OrgProperties:
    name: str


@strawberry.type
class Org:
    """Organization GraphQL type."""
    id: strawberry.ID
    properties: OrgProperties
    creator: Optional[User]
    members: List[User]
    managers: List[User]

    @classmethod
    def from_model(cls, org: models.ResolvedOrganization) -> "Org":
        return cls(
            id=strawberry.ID(str(org.id)),
            properties=OrgProperties(name=org.name),
            creator=User.from_model(org.creator) if org.creator else None,
            members=[User.from_model(user) for user in org.members],
            managers=[User.from_model(user) for user in org.managers],
        )


@strawberry.type
class TaskProperties:
    name: str
    description: Optional[str]
    is_private: bool


@strawberry.type
class Task:
    """Task GraphQL type."""
    id: strawberry.ID
    parent: Optional[strawberry.ID]
    org: strawberry.ID
    creator: User
    properties: TaskProperties
    watchers: List[User]
    assignees: List[User]

    @classmethod
    def from_model(cls, task: models.ResolvedTask) -> "Task":
        return cls(
            id=strawberry.ID(str(task.id)),
            parent=strawberry.ID(str(task.parent_id)) if task.parent_id is not None else None,
            org=strawberry.ID(str(task.organization_id)),
            creator=User.from_model(task.creator),
            properties=TaskProperties(
                name=task.name,
                description=task.description,
                is_private=task.is_private,
            ),
            watchers=[User.from_model(user) for user in task.watchers],
            assignees=[User.from_model(user) for user in task.assignees],
        )


@strawberry.type
class TaskUpdateResponse:
    """Outcome of a watcher/assignee change."""
    num_matched: int
    num_modified: int


@strawberry.type
class ForestWarning:
    """A data problem found while resolving a task forest."""
    kind: str
    task_id: strawberry.ID
    related_id: Optional[strawberry.ID]
    message: str


@strawberry.type
class TaskForest:
    """All tasks of an organization plus resolution warnings."""
    org: strawberry.ID
    tasks: List[Task]
    warnings: List[ForestWarning]
    degraded: bool

    @classmethod
    def from_model(cls, forest: models.TaskForest) -> "TaskForest":
        return cls(
            org=strawberry.ID(str(forest.organization_id)),
            tasks=[Task.from_model(task) for task in forest.tasks],
            warnings=[
                ForestWarning(
                    kind=anomaly.kind.value,
                    task_id=strawberry.ID(str(anomaly.task_id)),
                    related_id=strawberry.ID(str(anomaly.related_id)) if anomaly.related_id is not None else None,
                    message=anomaly.message,
                )
                for anomaly in forest.anomalies
            ],
            degraded=forest.degraded,
        )


@strawberry.type
class AuthPayload:
    """Token pair returned by signup, login and refreshTokens."""
    access_token: str
    refresh_token: str
    access_expires_at: str
    refresh_expires_at: str
    token_type: str

    @classmethod
    def from_model(cls, tokens: models.TokenPair) -> "AuthPayload":
        return cls(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            access_expires_at=tokens.access_expires_at,
            refresh_expires_at=tokens.refresh_expires_at,
            token_type=tokens.token_type,
        )


@strawberry.input
class TaskInputProperties:
    """Properties to merge into a task; omitted fields are left unchanged."""
    name: Optional[str] = None
    description: Optional[str] = None
    is_private: Optional[bool] = None


@strawberry.type
class Query:
    """GraphQL Query root."""

    @strawberry.field
    def me(self, info: Info) -> Optional[User]:
        """The authenticated user."""
        user_id = info.context.require_user()
        with graphql_errors():
            record = info.context.services.user_repository.get_by_id(user_id)
        return User.from_model(models.ResolvedUser.from_record(record)) if record else None

    @strawberry.field
    def users(self, info: Info, limit: int = 100, offset: int = 0) -> List[User]:
        """List users."""
        info.context.require_user()
        with graphql_errors():
            records = info.context.services.user_repository.list(limit=limit, offset=offset)
        return [User.from_model(models.ResolvedUser.from_record(record)) for record in records]

    @strawberry.field
    def orgs(self, info: Info) -> List[Org]:
        """List organizations."""
        info.context.require_user()
        with graphql_errors():
            orgs = info.context.services.organization_service.list_orgs()
        return [Org.from_model(org) for org in orgs]

    @strawberry.field
    def tasks(self, info: Info) -> List[Task]:
        """List every task."""
        info.context.require_user()
        with graphql_errors():
            tasks = info.context.services.task_service.list_tasks()
        return [Task.from_model(task) for task in tasks]

    @strawberry.field
    def get_task_tree(self, info: Info, org: strawberry.ID, include_private: bool = False) -> List[Task]:
        """Every task of the organization's forest, flattened."""
        info.context.require_user()
        organization_id = parse_id(org, "organization ID")
        with graphql_errors():
            tasks = info.context.services.task_service.get_task_tree(
                organization_id, include_private=include_private
            )
        return [Task.from_model(task) for task in tasks]

    @strawberry.field
    def task_forest(self, info: Info, org: strawberry.ID, include_private: bool = False) -> TaskForest:
        """Like getTaskTree, with resolution warnings and the degraded flag."""
        info.context.require_user()
        organization_id = parse_id(org, "organization ID")
        with graphql_errors():
            forest = info.context.services.task_service.get_task_forest(
                organization_id, include_private=include_private
            )
        return TaskForest.from_model(forest)


@strawberry.type
class Mutation:
    """GraphQL Mutation root."""

    @strawberry.mutation
    def signup(self, info: Info, email: str, password: str) -> AuthPayload:
        with graphql_errors():
            tokens = info.context.services.auth_service.signup(email, password)
        return AuthPayload.from_model(tokens)

    @strawberry.mutation
    def login(self, info: Info, email: str, password: str) -> AuthPayload:
        with graphql_errors():
            tokens = info.context.services.auth_service.login(email, password)
        return AuthPayload.from_model(tokens)

    @strawberry.mutation
    def refresh_tokens(self, info: Info, refresh_token: str) -> AuthPayload:
        """Exchange a refresh token for a new pair; the old one stops working."""
        with graphql_errors():
            tokens = info.context.services.auth_service.refresh(refresh_token)
        return AuthPayload.from_model(tokens)

    @strawberry.mutation
    def logout_all(self, info: Info) -> bool:
        """Invalidate every token of the caller."""
        user_id = info.context.require_user()
        with graphql_errors():
            info.context.services.auth_service.logout_all(user_id)
        return True

    @strawberry.mutation
    def create_org(self, info: Info, name: str) -> Org:
        user_id = info.context.require_user()
        with graphql_errors():
            org = info.context.services.organization_service.create_org(name, creator_id=user_id)
        return Org.from_model(org)

    @strawberry.mutation
    def add_task(
        self,
        info: Info,
        name: str,
        org: strawberry.ID,
        parent: Optional[str] = None,
        is_private: bool = False,
        description: Optional[str] = None,
    ) -> Task:
        """Add a task; an empty parent means a root task."""
        user_id = info.context.require_user()
        organization_id = parse_id(org, "organization ID")
        with graphql_errors():
            task = info.context.services.task_service.add_task(
                name=name,
                organization_id=organization_id,
                creator_id=user_id,
                parent_id=parent,
                is_private=is_private,
                description=description,
            )
        return Task.from_model(task)

    @strawberry.mutation
    def add_task_watcher(self, info: Info, user_id: strawberry.ID, task_id: strawberry.ID) -> TaskUpdateResponse:
        info.context.require_user()
        with graphql_errors():
            result = info.context.services.task_service.add_watcher(
                parse_id(task_id, "task ID"), parse_id(user_id, "user ID")
            )
        return TaskUpdateResponse(num_matched=result.num_matched, num_modified=result.num_modified)

    @strawberry.mutation
    def remove_task_watcher(self, info: Info, user_id: strawberry.ID, task_id: strawberry.ID) -> TaskUpdateResponse:
        info.context.require_user()
        with graphql_errors():
            result = info.context.services.task_service.remove_watcher(
                parse_id(task_id, "task ID"), parse_id(user_id, "user ID")
            )
        return TaskUpdateResponse(num_matched=result.num_matched, num_modified=result.num_modified)

    @strawberry.mutation
    def add_task_assignee(self, info: Info, user_id: strawberry.ID, task_id: strawberry.ID) -> TaskUpdateResponse:
        info.context.require_user()
        with graphql_errors():
            result = info.context.services.task_service.add_assignee(
                parse_id(task_id, "task ID"), parse_id(user_id, "user ID")
            )
        return TaskUpdateResponse(num_matched=result.num_matched, num_modified=result.num_modified)

    @strawberry.mutation
    def remove_task_assignee(self, info: Info, user_id: strawberry.ID, task_id: strawberry.ID) -> TaskUpdateResponse:
        info.context.require_user()
        with graphql_errors():
            result = info.context.services.task_service.remove_assignee(
                parse_id(task_id, "task ID"), parse_id(user_id, "user ID")
            )
        return TaskUpdateResponse(num_matched=result.num_matched, num_modified=result.num_modified)

    @strawberry.mutation
    def update_task_properties(
        self, info: Info, task_id: strawberry.ID, properties: TaskInputProperties
    ) -> Task:
        """Merge properties into the task and return it."""
        info.context.require_user()
        changes = {
            key: value
            for key, value in (
                ("name", properties.name),
                ("description", properties.description),
                ("is_private", properties.is_private),
            )
            if value is not None
        }
        with graphql_errors():
            task = info.context.services.task_service.update_properties(parse_id(task_id, "task ID"), changes)
        return Task.from_model(task)


schema = strawberry.Schema(query=Query, mutation=Mutation)
