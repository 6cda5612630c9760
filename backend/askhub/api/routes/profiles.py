"""
Profile Routes

Endpoints:
- POST /profiles - Create the caller's profile
- GET /profiles/me - The caller's profile (includes token balance)
- PATCH /profiles/me - Edit the caller's profile
- POST /profiles/me/avatar - Upload a new avatar image
- GET /profiles/me/stats - Dashboard counters
- GET /profiles/{profile_id} - Public profile
- GET /profiles/{profile_id}/stats - Counters for any profile
"""

from uuid import UUID

from fastapi import APIRouter, File, HTTPException, UploadFile, status

from askhub.api.deps import AppSettings, CurrentProfile, CurrentUser, DbSession, Feed, Storage
from askhub.schemas.profiles import ProfileCreate, ProfileRead, ProfileUpdate, UserStats
from askhub.services import accounts

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.post("", response_model=ProfileRead, status_code=status.HTTP_201_CREATED)
async def create_profile(
    data: ProfileCreate,
    current_user: CurrentUser,
    db: DbSession,
    feed: Feed,
    settings: AppSettings,
) -> ProfileRead:
    profile = await accounts.create_profile(
        db, feed, current_user.id, data.username, initial_tokens=settings.initial_tokens
    )
    return ProfileRead.model_validate(profile)


@router.get("/me", response_model=ProfileRead)
async def get_my_profile(profile: CurrentProfile) -> ProfileRead:
    return ProfileRead.model_validate(profile)


@router.patch("/me", response_model=ProfileRead)
async def update_my_profile(
    data: ProfileUpdate,
    profile: CurrentProfile,
    db: DbSession,
    feed: Feed,
) -> ProfileRead:
    """Partial update; only fields present in the body are changed."""
    profile = await accounts.update_profile(db, feed, profile, data.model_dump(exclude_unset=True))
    return ProfileRead.model_validate(profile)


@router.post("/me/avatar", response_model=ProfileRead)
async def upload_avatar(
    profile: CurrentProfile,
    db: DbSession,
    feed: Feed,
    storage: Storage,
    file: UploadFile = File(...),
) -> ProfileRead:
    """Upload an image (max 5MB) and make it the caller's avatar."""
    data = await file.read()
    profile = await accounts.replace_avatar(
        db,
        feed,
        storage,
        profile,
        filename=file.filename or "avatar",
        content_type=file.content_type,
        data=data,
    )
    return ProfileRead.model_validate(profile)


@router.get("/me/stats", response_model=UserStats)
async def get_my_stats(profile: CurrentProfile, db: DbSession) -> UserStats:
    return UserStats(**await accounts.user_stats(db, profile.id))


@router.get("/{profile_id}", response_model=ProfileRead)
async def get_profile(profile_id: UUID, db: DbSession) -> ProfileRead:
    profile = await accounts.get_profile(db, profile_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return ProfileRead.model_validate(profile)


@router.get("/{profile_id}/stats", response_model=UserStats)
async def get_profile_stats(profile_id: UUID, db: DbSession) -> UserStats:
    if await accounts.get_profile(db, profile_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return UserStats(**await accounts.user_stats(db, profile_id))
