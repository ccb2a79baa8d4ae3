"""API routes for the current user.

The identity comes from Clerk (see `app.core.security`); the profile is
the local mirror kept by `ProfileSync`.  Resolving the identity through
`get_current_identity` already performs the mirror upsert, so
`GET /users/me` simply reads it back.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_db_session, get_profile_sync, require_identity
from app.core.security import Identity
from app.models.schemas import CurrentUserResponse, DisplayNameUpdate, IdentityRead, ProfileRead
from app.models.tables import Profile
from app.services.profile_service import ProfileSync

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=CurrentUserResponse)
async def read_current_user(
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUserResponse:
    """Return the authenticated identity and its mirrored profile (``null`` if the mirror failed)."""
    try:
        profile = await db.get(Profile, identity.id)
    except SQLAlchemyError:
        await db.rollback()
        profile = None
    return CurrentUserResponse(
        identity=IdentityRead.model_validate(identity),
        profile=ProfileRead.model_validate(profile) if profile is not None else None,
    )


@router.patch("/me", response_model=ProfileRead)
async def update_current_user(
    update: DisplayNameUpdate,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db_session),
    profiles: ProfileSync = Depends(get_profile_sync),
) -> ProfileRead:
    try:
        profile = await profiles.update_display_name(db, identity, update.display_name)
    except LookupError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Profile unavailable")
    except SQLAlchemyError:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Profile unavailable")
    return ProfileRead.model_validate(profile)
