"""
Security utilities for user session tokens and external identity tokens.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt

from devicehub.config import settings


class IdentityTokenError(Exception):
    """Raised when an external identity token cannot be verified."""


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT session token for a user.

    Args:
        data: Data to encode in the token
        expires_delta: Optional expiration time delta

    Returns:
        Encoded JWT token
    """
    to_encode = data.copy()
    now = datetime.now(timezone.utc)

    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)

    to_encode.update({"exp": expire, "iat": now})
    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    return encoded_jwt


def decode_access_token(token: str) -> Optional[dict]:
    """
    Decode and validate a JWT session token.

    Args:
        token: JWT token to decode

    Returns:
        Decoded token payload or None if invalid
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        return None


def verify_identity_token(id_token: str) -> dict:
    """
    Verify an identity token issued by the external identity provider.

    Args:
        id_token: Token presented by the client at sign-in

    Returns:
        Verified claims (always contains ``sub``)

    Raises:
        IdentityTokenError: Signature, issuer, audience or expiry check failed
    """
    options = {"verify_aud": settings.IDENTITY_PROVIDER_AUDIENCE is not None}
    try:
        claims = jwt.decode(
            id_token,
            settings.IDENTITY_PROVIDER_KEY,
            algorithms=settings.identity_algorithms,
            audience=settings.IDENTITY_PROVIDER_AUDIENCE,
            issuer=settings.IDENTITY_PROVIDER_ISSUER,
            options=options,
        )
    except JWTError as e:
        raise IdentityTokenError(str(e)) from e

    if not claims.get("sub"):
        raise IdentityTokenError("Identity token has no subject")
    return claims
