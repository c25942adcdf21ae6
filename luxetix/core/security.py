"""
Access token verification.

Users sign in through the Supabase auth platform; requests carry its
HS256 access token. This module only verifies tokens, it never stores
passwords.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Any
import uuid

from jose import JWTError, jwt

from luxetix.config import Settings


@dataclass
class AuthenticatedUser:
    """Identity taken from a verified access token."""
    id: uuid.UUID
    email: Optional[str] = None
    role: Optional[str] = None  # Auth platform role claim, e.g. "authenticated"


def create_access_token(
    subject: str | uuid.UUID,
    settings: Settings,
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create an access token shaped like the auth platform's.

    Used for local development and tests.
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(hours=1))

    to_encode = {
        "sub": str(subject),
        "aud": settings.JWT_AUDIENCE,
        "role": "authenticated",
        "exp": expire,
        "iat": now,
    }
    if email:
        to_encode["email"] = email

    return jwt.encode(
        to_encode,
        settings.SUPABASE_JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM
    )


def decode_token(token: str, settings: Settings) -> Optional[dict[str, Any]]:
    """
    Decode and validate a JWT token.

    Returns:
        Decoded token payload or None if invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
        return payload
    except JWTError:
        return None


def verify_access_token(token: str, settings: Settings) -> Optional[AuthenticatedUser]:
    """
    Verify an access token and return the user it identifies.

    Returns:
        AuthenticatedUser or None if the token is invalid, expired or has no usable subject
    """
    payload = decode_token(token, settings)
    if payload is None:
        return None

    subject = payload.get("sub")
    if not subject:
        return None

    try:
        user_id = uuid.UUID(str(subject))
    except ValueError:
        return None

    return AuthenticatedUser(
        id=user_id,
        email=payload.get("email"),
        role=payload.get("role"),
    )
