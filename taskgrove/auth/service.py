"""
Account and session management.

Access and refresh tokens are opaque random strings. The database keeps only
their SHA-256 hashes together with the user's token_version at issue time;
bumping the version (logout everywhere) invalidates every outstanding token.
"""
import os
import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from pydantic import ValidationError

from taskgrove.auth.context import AuthContext
from taskgrove.exceptions import NotAuthenticatedError, ValidationFailedError
from taskgrove.models.user_models import LoginRequest, SignupRequest, TokenPair, UserRecord
from taskgrove.storage.user_repository import UserRepository, format_timestamp

logger = logging.getLogger(__name__)

ACCESS_TOKEN_MINUTES = int(os.getenv("TASKGROVE_ACCESS_TOKEN_MINUTES", "15"))
REFRESH_TOKEN_DAYS = int(os.getenv("TASKGROVE_REFRESH_TOKEN_DAYS", "7"))


def hash_token(token: str) -> str:
    """Hash a token for storage and lookup."""
    return hashlib.sha256(token.encode()).hexdigest()


def _first_error(error: ValidationError) -> str:
    details = error.errors()
    if not details:
        return str(error)
    field = ".".join(str(part) for part in details[0].get("loc", ()))
    message = details[0].get("msg", "invalid value")
    return f"{field}: {message}" if field else message


class AuthService:
    """Service for signup, login and token lifecycle."""

    def __init__(
        self,
        user_repository: UserRepository,
        access_token_minutes: Optional[int] = None,
        refresh_token_days: Optional[int] = None,
    ):
        self.user_repository = user_repository
        self.access_lifetime = timedelta(
            minutes=access_token_minutes if access_token_minutes is not None else ACCESS_TOKEN_MINUTES
        )
        self.refresh_lifetime = timedelta(
            days=refresh_token_days if refresh_token_days is not None else REFRESH_TOKEN_DAYS
        )

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password using bcrypt."""
        return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

    @staticmethod
    def verify_password(password: str, password_hash: Optional[str]) -> bool:
        """Verify a password against its hash."""
        if not password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
        except ValueError:
            return False

    def _issue_tokens(self, user: UserRecord) -> TokenPair:
        self.user_repository.clean_expired_sessions()
        now = datetime.now(timezone.utc)
        access_token = secrets.token_urlsafe(32)
        refresh_token = secrets.token_urlsafe(32)
        access_expires_at = now + self.access_lifetime
        refresh_expires_at = now + self.refresh_lifetime

        self.user_repository.create_session(
            user.id, hash_token(access_token), "access", user.token_version, access_expires_at
        )
        self.user_repository.create_session(
            user.id, hash_token(refresh_token), "refresh", user.token_version, refresh_expires_at
        )
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_at=format_timestamp(access_expires_at),
            refresh_expires_at=format_timestamp(refresh_expires_at),
        )

    def signup(self, email: str, password: str) -> TokenPair:
        """
        Create an account and log it in.

        Raises:
            ValidationFailedError: Malformed email or password shorter than 8 characters
            ValueError: Email already registered
        """
        try:
            request = SignupRequest(email=email, password=password)
        except ValidationError as e:
            raise ValidationFailedError(_first_error(e)) from e

        user_id = self.user_repository.create(request.email, self.hash_password(request.password))
        user = self.user_repository.get_by_id(user_id)
        if user is None:
            raise ValueError(f"User {user_id} was created but could not be retrieved")
        logger.info(f"User {user_id} signed up")
        return self._issue_tokens(user)

    def login(self, email: str, password: str) -> TokenPair:
        """
        Exchange credentials for a token pair.

        Raises:
            ValueError: Unknown email or wrong password
        """
        try:
            request = LoginRequest(email=email, password=password)
        except ValidationError as e:
            raise ValidationFailedError(_first_error(e)) from e

        user = self.user_repository.get_by_email(request.email)
        if user is None:
            raise ValueError("No user found with that email")
        if not self.verify_password(request.password, user.password_hash):
            logger.info(f"Rejected login for user {user.id}: incorrect password")
            raise ValueError("Incorrect password")

        self.user_repository.touch_last_login(user.id)
        return self._issue_tokens(user)

    def refresh(self, refresh_token: str) -> TokenPair:
        """
        Rotate a refresh token: the old one is consumed, a new pair is issued.

        Raises:
            NotAuthenticatedError: Unknown, expired or revoked refresh token
        """
        token_hash = hash_token(refresh_token)
        session = self.user_repository.get_session(token_hash, "refresh")
        if session is None:
            raise NotAuthenticatedError("Invalid or expired refresh token")

        # Consumed whether or not it is still honored; losing the delete means
        # another request already exchanged it
        if not self.user_repository.delete_session(token_hash):
            raise NotAuthenticatedError("Invalid or expired refresh token")

        user = self.user_repository.get_by_id(session["user_id"])
        if user is None or session["token_version"] < user.token_version:
            raise NotAuthenticatedError("Refresh token has been revoked")
        return self._issue_tokens(user)

    def logout_all(self, user_id: int) -> int:
        """Invalidate every token of the user. Returns the new token version."""
        return self.user_repository.bump_token_version(user_id)

    def authenticate(self, access_token: Optional[str]) -> Optional[AuthContext]:
        """Map an access token to an AuthContext, or None when it is not valid."""
        if not access_token:
            return None
        session = self.user_repository.get_session(hash_token(access_token), "access")
        if session is None:
            return None
        user = self.user_repository.get_by_id(session["user_id"])
        if user is None or session["token_version"] < user.token_version:
            return None
        return AuthContext(user_id=user.id)
