"""
Password hashing, session tokens and request authentication.
"""
from .context import AuthContext, require_authentication
from .service import AuthService, hash_token

__all__ = ["AuthContext", "require_authentication", "AuthService", "hash_token"]
