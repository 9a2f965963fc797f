"""
Pydantic models for users and session tokens.
"""
import re
from typing import Optional
from pydantic import BaseModel, Field, field_validator

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 8


class UserRecord(BaseModel):
    """User row as held by the user store. Never sent to clients as-is."""
    id: int
    email: str
    password_hash: Optional[str] = Field(None, repr=False)
    token_version: int = 0
    created_at: Optional[str] = None
    last_login_at: Optional[str] = None


class ResolvedUser(BaseModel):
    """Public view of a user embedded in tasks and organizations."""
    id: int
    email: str

    @classmethod
    def from_record(cls, record: UserRecord) -> "ResolvedUser":
        return cls(id=record.id, email=record.email)


class SignupRequest(BaseModel):
    """Request model for creating an account."""
    email: str = Field(..., description="Unique email address", min_length=3)
    password: str = Field(..., description="Plain text password", min_length=MIN_PASSWORD_LENGTH)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Normalize and sanity-check the email address."""
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError(f"Invalid email address '{v}'")
        return v


class LoginRequest(BaseModel):
    """Request model for logging in."""
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class TokenPair(BaseModel):
    """Access and refresh tokens issued together."""
    access_token: str
    refresh_token: str
    access_expires_at: str
    refresh_expires_at: str
    token_type: str = "Bearer"
