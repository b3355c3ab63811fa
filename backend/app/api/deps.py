import logging
from typing import AsyncGenerator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.errors import UnauthorizedError
from app.core.rate_limiter import get_real_client_ip
from app.core.security import PasswordHasher, TokenIdentity, TokenIssuer
from app.services.auth import AuthService, ClientInfo
from app.services.data import ProjectService

logger = logging.getLogger("webide.deps")

# auto_error=False so a missing header goes through our own 401 envelope
bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


def get_password_hasher(request: Request) -> PasswordHasher:
    return request.app.state.password_hasher


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """One session per request, rolled back if the request fails."""
    async with request.app.state.db.session() as session:
        yield session


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """
    Extract the raw bearer token.

    Raises:
        UnauthorizedError: If the Authorization header is missing or not a Bearer credential
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Not authenticated")
    return credentials.credentials


async def get_current_identity(
    request: Request,
    token: str = Depends(get_bearer_token),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> TokenIdentity:
    """
    Verify the access token and return the caller's identity.

    Stateless: the database is not consulted. The identity is also stored on
    request.state so rate limiting and request logging can key on the user.
    """
    identity = issuer.verify_access_token(token)
    request.state.user = identity
    return identity


def get_client_info(request: Request) -> ClientInfo:
    return ClientInfo(
        ip_address=get_real_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    issuer: TokenIssuer = Depends(get_token_issuer),
    hasher: PasswordHasher = Depends(get_password_hasher),
) -> AuthService:
    return AuthService(db, settings, issuer=issuer, hasher=hasher)


def get_project_service(db: AsyncSession = Depends(get_db)) -> ProjectService:
    return ProjectService(db)
