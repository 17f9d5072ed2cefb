"""
Caller identity from the trusted authentication gateway.

Token validation happens upstream; the gateway forwards the authenticated subject
in a header (X-Authenticated-User by default). This module maps that subject to a
local User row so bookmarks and thumbnail uploads have a foreign key to point at.
"""
import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from db.session import get_async_session
from models.user import User

logger = logging.getLogger(__name__)

DEV_USER_EXTERNAL_ID = "dev|local-development-user"
DEV_USER_EMAIL = "dev@localhost"
MAX_EXTERNAL_ID_LENGTH = 255


async def get_or_create_user(
    db: AsyncSession,
    external_id: str,
    email: str | None = None,
) -> User:
    """
    Get existing user or create new one for a gateway subject.

    Handles race conditions where multiple concurrent requests may try to create
    the same user simultaneously. If an IntegrityError occurs (due to unique
    constraint on external_id), the function rolls back and fetches the existing user.

    Note: Uses flush(), not commit. Session generator handles commit at request end.

    Important: This function is called during authentication before any other
    database operations in the request. The rollback on IntegrityError is safe
    because no prior work exists to be undone.
    """
    result = await db.execute(select(User).where(User.external_id == external_id))
    user = result.scalar_one_or_none()

    if user is None:
        user = User(external_id=external_id, email=email)
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            # Race condition: another request created the user between our SELECT
            # and INSERT. Rollback and fetch the existing user.
            await db.rollback()
            result = await db.execute(select(User).where(User.external_id == external_id))
            user = result.scalar_one()
        else:
            logger.info("user_created user_id=%s", user.id)

    if email and user.email != email:
        user.email = email
        await db.flush()

    return user


async def get_or_create_dev_user(db: AsyncSession) -> User:
    """Get or create a development user for DEV_MODE."""
    return await get_or_create_user(
        db,
        external_id=DEV_USER_EXTERNAL_ID,
        email=DEV_USER_EMAIL,
    )


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> User:
    """
    Dependency that resolves the caller from the gateway identity header.

    In DEV_MODE, a request without the header gets the local development user.

    Raises:
        HTTPException: 401 if no identity is present (outside DEV_MODE) or the
            identity is malformed.
    """
    external_id = (request.headers.get(settings.identity_header) or "").strip()

    if not external_id:
        if settings.dev_mode:
            return await get_or_create_dev_user(db)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    if len(external_id) > MAX_EXTERNAL_ID_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid identity",
        )

    return await get_or_create_user(db, external_id=external_id)
