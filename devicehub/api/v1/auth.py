"""
Authentication API endpoints.

Users sign in with an external identity token and receive a session JWT.
The session is a person-level credential, separate from device credentials,
and is what authorizes linking a device to the user.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from devicehub.api.dependencies import get_current_user
from devicehub.config import settings
from devicehub.core.security import IdentityTokenError, create_access_token, verify_identity_token
from devicehub.database import get_db
from devicehub.errors import Unauthenticated
from devicehub.models import User
from devicehub.schemas.user import (
    IdentityTokenExchange,
    LinkDeviceRequest,
    LinkDeviceResponse,
    LinkedDevice,
    MeResponse,
    SessionResponse,
    UserResponse,
)
from devicehub.services.ownership_service import link_device, list_user_devices
from devicehub.services.user_service import upsert_user_from_identity

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/session", response_model=SessionResponse)
async def create_session(
    exchange: IdentityTokenExchange,
    db: Annotated[AsyncSession, Depends(get_db)],
    origin: Annotated[Optional[str], Header()] = None,
):
    """
    Exchange an external identity token for a session.

    Web callers (requests with an Origin header) get the session as an
    HttpOnly cookie; native callers get it in the response body.

    Args:
        exchange: Identity token and optional display name
        db: Database session
        origin: Origin header, present for browser requests

    Returns:
        User and, for native callers, the session token

    Raises:
        Unauthenticated: Identity token failed verification
    """
    try:
        claims = verify_identity_token(exchange.id_token)
    except IdentityTokenError as e:
        logger.info("identity_token_rejected", error=str(e))
        raise Unauthenticated("Invalid identity token")

    user = await upsert_user_from_identity(
        db,
        subject=claims["sub"],
        email=claims.get("email"),
        display_name=exchange.display_name,
    )
    token = create_access_token(data={"sub": user.id, "name": user.display_name})
    logger.info("user_signed_in", user_id=user.id, web=origin is not None)

    body = SessionResponse(
        user=UserResponse.model_validate(user),
        token=None if origin else token,
    )
    response = JSONResponse(content=body.model_dump(mode="json"))
    if origin:
        response.set_cookie(
            settings.SESSION_COOKIE_NAME,
            token,
            max_age=settings.JWT_EXPIRATION_MINUTES * 60,
            httponly=True,
            secure=True,
            samesite="none",
            path="/",
        )
    return response


@router.post("/link-device", response_model=LinkDeviceResponse)
async def link_device_to_user(
    link: LinkDeviceRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """
    Link a device to the signed-in user.

    Raises:
        NotFound: Device does not exist
        Conflict: Device already belongs to another user
    """
    result = await link_device(db, str(link.device_id), current_user)
    return LinkDeviceResponse(
        linked=True,
        device_id=result.device_id,
        already_linked=result.already_linked,
    )


@router.get("/me", response_model=MeResponse)
async def get_me(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Get the signed-in user and their linked devices."""
    devices = await list_user_devices(db, current_user)
    return MeResponse(
        user=UserResponse.model_validate(current_user),
        devices=[LinkedDevice.model_validate(device) for device in devices],
    )


@router.post("/logout")
async def logout():
    """Clear the session cookie. Native clients just discard their token."""
    response = JSONResponse(content={"ok": True})
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/", secure=True, httponly=True, samesite="none")
    return response
