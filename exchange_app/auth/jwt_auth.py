"""JWT authentication utilities and user context management."""

import time
from typing import Any

import jwt
from pydantic import BaseModel, field_validator

from exchange_app.config import settings


class UserContext(BaseModel):
    """Authenticated principal extracted from a JWT token."""

    user_id: str
    email: str | None = None

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v: str) -> str:
        """Validate that user_id is a non-empty string."""
        if not v or not v.strip():
            msg = "User ID must be a non-empty string"
            raise ValueError(msg)
        return v.strip()


class AuthenticationError(Exception):
    """Base authentication error."""


class InvalidTokenError(AuthenticationError):
    """Invalid JWT token error."""


class ExpiredTokenError(AuthenticationError):
    """Expired JWT token error."""


class MissingTokenError(AuthenticationError):
    """Missing JWT token error."""


def validate_jwt_token(token: str, secret_key: str | None = None) -> UserContext:
    """Validate JWT token and extract user context.

    Args:
        token: JWT token string
        secret_key: Signing key, defaults to the configured secret

    Returns:
        UserContext for the token subject

    Raises:
        InvalidTokenError: If token is malformed or has invalid signature
        ExpiredTokenError: If token has expired
        MissingTokenError: If token is empty or None
    """
    if not token or not token.strip():
        raise MissingTokenError("JWT token is required")

    try:
        payload = jwt.decode(
            token.strip(),
            secret_key or settings.jwt_secret_key,
            algorithms=["HS256"],
            options={"require": ["sub"]},
        )
        return UserContext(user_id=payload["sub"], email=payload.get("email"))

    except jwt.ExpiredSignatureError as e:
        raise ExpiredTokenError("JWT token has expired") from e
    except jwt.InvalidTokenError as e:
        raise InvalidTokenError(f"Invalid JWT token: {e}") from e
    except ValueError as e:
        raise InvalidTokenError(f"Invalid token claims: {e}") from e


def generate_jwt_token(
    user_id: str,
    email: str | None = None,
    expires_in_seconds: int | None = None,
    secret_key: str | None = None,
) -> str:
    """Generate a JWT token for testing and development.

    Args:
        user_id: Token subject
        email: Optional email claim
        expires_in_seconds: Token expiration time (None for no expiration)
        secret_key: Signing key, defaults to the configured secret

    Returns:
        JWT token string

    Raises:
        ValueError: If user_id is empty
    """
    if not user_id or not user_id.strip():
        msg = "user_id must be a non-empty string"
        raise ValueError(msg)

    issued_at = int(time.time())
    payload: dict[str, Any] = {"sub": user_id.strip(), "iat": issued_at}
    if email:
        payload["email"] = email
    if expires_in_seconds is not None:
        payload["exp"] = issued_at + expires_in_seconds

    return jwt.encode(payload, secret_key or settings.jwt_secret_key, algorithm="HS256")


def extract_token_from_header(authorization_header: str) -> str:
    """Extract JWT token from Authorization header.

    Args:
        authorization_header: Authorization header value

    Returns:
        JWT token string

    Raises:
        MissingTokenError: If header is empty or doesn't contain Bearer token
        InvalidTokenError: If header format is invalid
    """
    if not authorization_header or not authorization_header.strip():
        raise MissingTokenError("Authorization header is required")

    header_parts = authorization_header.strip().split()

    if len(header_parts) != 2:
        raise InvalidTokenError("Authorization header must be 'Bearer <token>'")

    scheme, token = header_parts
    if scheme.lower() != "bearer":
        raise InvalidTokenError("Authorization header must use Bearer scheme")

    return token


def authenticate(authorization_header: str) -> UserContext:
    """Turn an Authorization header into the authenticated principal.

    Raises:
        AuthenticationError: If the header or token is missing or invalid
    """
    return validate_jwt_token(extract_token_from_header(authorization_header))
