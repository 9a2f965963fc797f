"""
Request authentication context.
"""
from typing import Optional

from pydantic import BaseModel

from taskgrove.exceptions import NotAuthenticatedError


class AuthContext(BaseModel):
    """Who is making the request. Absent for anonymous requests."""
    user_id: int


def require_authentication(auth: Optional[AuthContext]) -> AuthContext:
    """Return the context, or raise NotAuthenticatedError when there is none."""
    if auth is None:
        raise NotAuthenticatedError()
    return auth
