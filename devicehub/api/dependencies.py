"""
API Dependencies

Common dependencies used across API endpoints: the device authorization
gate and the user session check.
"""
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from devicehub.config import settings
from devicehub.core.security import decode_access_token
from devicehub.database import get_db
from devicehub.errors import Unauthenticated
from devicehub.models import User
from devicehub.services.device_service import DeviceContext, resolve_device, touch_heartbeat
from devicehub.services.user_service import get_user_by_id

logger = structlog.get_logger()

DEVICE_ID_HEADER = "X-Device-ID"
PREVIOUS_DEVICE_ID_HEADER = "X-Previous-Device-ID"


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_device(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> DeviceContext:
    """
    Resolve the calling device for a scoped endpoint.

    The bearer credential wins over ``X-Device-ID``; the header is only a
    fallback for clients that send no credential. The resolved id is stored
    on ``request.state.device_id`` and is the only id downstream code may
    scope by.

    Args:
        request: Incoming request
        db: Database session

    Returns:
        DeviceContext for the resolved device

    Raises:
        Unauthenticated: No credential and no device id
        Forbidden: Credential or device id does not resolve
    """
    context = await resolve_device(
        db,
        bearer_token(request.headers.get("Authorization")),
        request.headers.get(DEVICE_ID_HEADER),
    )
    request.state.device_id = context.device_id
    logger.debug("device_resolved", device_id=context.device_id, via=context.via, path=request.url.path)
    await touch_heartbeat(db, context.device, column="last_seen_at")
    return context


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get the signed-in user from the session cookie (web) or a bearer JWT (native).

    This is a person-level credential and is never a device credential.

    Raises:
        Unauthenticated: Token missing, invalid or expired, or user unknown
    """
    token = request.cookies.get(settings.SESSION_COOKIE_NAME) or bearer_token(
        request.headers.get("Authorization")
    )
    if not token:
        raise Unauthenticated("Authentication required")

    payload = decode_access_token(token)
    if payload is None or not payload.get("sub"):
        raise Unauthenticated("Invalid or expired token")

    user = await get_user_by_id(db, payload["sub"])
    if user is None:
        raise Unauthenticated("Invalid or expired token")

    request.state.user_id = user.id
    return user
