"""
User service for user-related business logic.
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
import structlog

from devicehub.models import User

logger = structlog.get_logger()


async def get_user_by_id(db: AsyncSession, user_id: str) -> Optional[User]:
    """
    Get a user by ID.

    Args:
        db: Database session
        user_id: User ID

    Returns:
        User object or None if not found
    """
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_subject(db: AsyncSession, subject: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.identity_subject == subject))
    return result.scalar_one_or_none()


async def upsert_user_from_identity(
    db: AsyncSession,
    subject: str,
    email: Optional[str] = None,
    display_name: Optional[str] = None,
) -> User:
    """
    Create or update the user for an external identity subject.

    Email and display name only overwrite stored values when provided; the
    identity provider may send them on first sign-in only.

    Args:
        db: Database session
        subject: Identity provider subject claim
        email: Email claim, if any
        display_name: Display name supplied by the client, if any

    Returns:
        The user row
    """
    user = await get_user_by_subject(db, subject)
    if user is None:
        user = User(identity_subject=subject, email=email, display_name=display_name)
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            # Concurrent first sign-in for the same subject
            await db.rollback()
            user = await get_user_by_subject(db, subject)
            if user is None:
                raise
        else:
            await db.refresh(user)
            logger.info("user_created", user_id=user.id)
            return user

    changed = False
    if email and email != user.email:
        user.email = email
        changed = True
    if display_name and display_name != user.display_name:
        user.display_name = display_name
        changed = True
    if changed:
        await db.commit()
        await db.refresh(user)
    return user
