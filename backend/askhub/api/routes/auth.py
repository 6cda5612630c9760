"""
Authentication Routes

Endpoints:
- POST /auth/signup - Create email/password credentials
- POST /auth/signin - Exchange credentials for a session (creates the profile lazily)
- POST /auth/signout - Clear session
- GET /auth/me - Current identity and its profile

The JWT is returned in the response body and set as an HttpOnly cookie; the
client chooses which to use.
"""

from fastapi import APIRouter, Response, status

from askhub.api.deps import CurrentUser, DbSession, Feed, create_access_token
from askhub.config import get_settings
from askhub.schemas.auth import SessionRead, SignInRequest, SignUpRequest, TokenResponse
from askhub.schemas.profiles import ProfileRead
from askhub.services import accounts

router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()


def _set_session_cookie(response: Response, access_token: str, expires_in: int) -> None:
    # Cross-domain deployments need samesite="none" + secure
    response.set_cookie(
        key="access_token",
        value=access_token,
        httponly=True,
        secure=settings.cookie_cross_domain or settings.environment != "development",
        samesite="none" if settings.cookie_cross_domain else "lax",
        max_age=expires_in,
    )


@router.post("/signup", response_model=SessionRead, status_code=status.HTTP_201_CREATED)
async def sign_up(request: SignUpRequest, db: DbSession) -> SessionRead:
    """Create credentials. The profile is created at first sign-in."""
    user = await accounts.sign_up(db, request.email, request.password)
    return SessionRead(user_id=user.id, email=user.email)


@router.post("/signin", response_model=TokenResponse)
async def sign_in(
    request: SignInRequest,
    response: Response,
    db: DbSession,
    feed: Feed,
) -> TokenResponse:
    """
    Exchange credentials for a session JWT.

    If the identity has no profile yet and a username is supplied, the
    profile is created here; that step never fails the sign-in.
    """
    user = await accounts.authenticate(db, request.email, request.password)
    user_id = user.id
    await accounts.ensure_profile(
        db, feed, user, request.username, initial_tokens=settings.initial_tokens
    )

    access_token = create_access_token(user_id)
    expires_in = settings.jwt_expire_minutes * 60
    _set_session_cookie(response, access_token, expires_in)

    return TokenResponse(access_token=access_token, expires_in=expires_in)


@router.post("/signout", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(response: Response) -> None:
    """
    Clear the authentication cookie.

    A JWT stored elsewhere by the client stays valid until it expires.
    """
    response.delete_cookie(
        key="access_token",
        httponly=True,
        secure=settings.cookie_cross_domain or settings.environment != "development",
        samesite="none" if settings.cookie_cross_domain else "lax",
    )


@router.get("/me", response_model=SessionRead)
async def get_session(current_user: CurrentUser, db: DbSession) -> SessionRead:
    profile = await accounts.get_profile(db, current_user.id)
    return SessionRead(
        user_id=current_user.id,
        email=current_user.email,
        profile=ProfileRead.model_validate(profile) if profile else None,
    )
