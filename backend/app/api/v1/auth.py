from typing import Any, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials

from app.api.deps import (
    bearer_scheme,
    get_auth_service,
    get_client_info,
    get_current_identity,
)
from app.core.errors import UnauthorizedError
from app.core.rate_limiter import RateLimits, limiter, rate_limiting_disabled
from app.core.security import TokenIdentity
from app.schemas.token import (
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    LogoutResponse,
    SessionList,
    TokenRefreshRequest,
    TokenRefreshResponse,
    VerifyResponse,
)
from app.schemas.user import PublicUser, UserCreate
from app.services.auth import AuthService, ClientInfo

router = APIRouter()


@router.post("/register", response_model=PublicUser, status_code=status.HTTP_201_CREATED)
@limiter.limit(RateLimits.AUTH_REGISTER, exempt_when=rate_limiting_disabled)
async def register(
    request: Request,
    user_in: UserCreate,
    service: AuthService = Depends(get_auth_service),
) -> Any:
    """
    Register a new user.

    Email is compared case-insensitively; the password must satisfy the configured policy.
    """
    return await service.register(user_in)


@router.post("/login", response_model=LoginResponse)
@limiter.limit(RateLimits.AUTH_LOGIN, exempt_when=rate_limiting_disabled)
async def login(
    request: Request,
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service),
    client: ClientInfo = Depends(get_client_info),
) -> Any:
    """
    Authenticate with email and password.

    Returns a short-lived access token and a single-use refresh token.
    Unknown email, wrong password and disabled account all fail the same way.
    """
    return await service.login(login_data.email, login_data.password, client)


@router.post("/refresh", response_model=TokenRefreshResponse)
@limiter.limit(RateLimits.AUTH_REFRESH, exempt_when=rate_limiting_disabled)
async def refresh(
    request: Request,
    refresh_request: TokenRefreshRequest,
    service: AuthService = Depends(get_auth_service),
    client: ClientInfo = Depends(get_client_info),
) -> Any:
    """
    Exchange a refresh token for a new token pair.

    Does NOT require a valid access token. The presented refresh token is
    revoked and a new one is issued; replaying the old one fails with 401.
    """
    return await service.refresh(refresh_request.refresh_token, client)


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    body: Optional[LogoutRequest] = None,
    identity: TokenIdentity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> Any:
    """
    Logout current user.

    Revokes the refresh token given in the body, or every refresh token of the
    user when none is given. Access tokens stay valid until they expire.
    """
    revoked = await service.logout(identity, body.refresh_token if body else None)
    return LogoutResponse(revoked=revoked)


@router.get("/verify", response_model=VerifyResponse)
@limiter.limit(RateLimits.AUTH_VERIFY, exempt_when=rate_limiting_disabled)
async def verify(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    service: AuthService = Depends(get_auth_service),
) -> Any:
    """
    Check whether the presented access token is still good.

    A missing Authorization header is a 401; an invalid or expired token is
    reported as {"valid": false} so the client can poll without error handling.
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Not authenticated")
    return await service.verify(credentials.credentials)


@router.get("/me", response_model=PublicUser)
async def read_users_me(
    identity: TokenIdentity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> Any:
    """Get current authenticated user."""
    return await service.current_user(identity)


@router.get("/sessions", response_model=SessionList)
async def list_sessions(
    identity: TokenIdentity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> Any:
    return SessionList(sessions=await service.list_sessions(identity))
