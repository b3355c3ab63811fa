"""
Auth Orchestrator: register, login, refresh, logout and verify.

Each operation runs in the request's session and commits exactly once, so an
aborted request leaves no partial state behind.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.errors import ConflictError, UnauthorizedError
from app.core.password_policy import PasswordPolicy
from app.core.security import PasswordHasher, TokenIdentity, TokenIssuer, hash_refresh_token
from app.schemas.token import (
    LoginResponse,
    SessionInfo,
    TokenRefreshResponse,
    VerifyResponse,
)
from app.schemas.user import PublicUser, UserCreate
from app.services.auth.credential_store import CredentialStore
from app.services.auth.refresh_token_store import RefreshTokenStore

logger = logging.getLogger("webide.auth")

_INVALID_LOGIN = "Invalid email or password"
_INVALID_REFRESH = "Invalid or expired refresh token"
_ACCOUNT_EXISTS = "An account with this email or username already exists"


@dataclass(frozen=True)
class ClientInfo:
    """Request metadata recorded alongside refresh tokens for auditing."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuthService:
    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        issuer: Optional[TokenIssuer] = None,
        hasher: Optional[PasswordHasher] = None,
        policy: Optional[PasswordPolicy] = None,
    ):
        self.db = db
        self.settings = settings
        self.issuer = issuer or TokenIssuer(settings)
        self.hasher = hasher or PasswordHasher(settings.BCRYPT_ROUNDS)
        self.policy = policy or PasswordPolicy.from_settings(settings)
        self.credentials = CredentialStore(db, self.hasher)
        self.refresh_tokens = RefreshTokenStore(db, self.issuer)

    async def register(self, data: UserCreate) -> PublicUser:
        self.policy.validate(data.password)

        conflicts = await self.credentials.find_conflicts(data.email, data.username)
        if conflicts:
            raise ConflictError(_ACCOUNT_EXISTS, details=[{"field": f} for f in conflicts])

        try:
            user = await self.credentials.create(data.email, data.username, data.password)
            await self.db.commit()
        except IntegrityError:
            # Lost a race against a concurrent registration with the same email/username
            await self.db.rollback()
            raise ConflictError(_ACCOUNT_EXISTS)

        await self.db.refresh(user)
        logger.info(f"Registered user {user.id}")
        return self.credentials.to_public(user)

    async def login(self, email: str, password: str, client: Optional[ClientInfo] = None) -> LoginResponse:
        client = client or ClientInfo()
        user = await self.credentials.authenticate(email, password)
        if user is None:
            logger.warning(f"Failed login from {client.ip_address or 'unknown'}")
            raise UnauthorizedError(_INVALID_LOGIN)

        await self.credentials.record_login(user)
        issued = await self.refresh_tokens.issue(user.id, client.ip_address, client.user_agent)
        access_token = self.issuer.create_access_token(user)
        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"User {user.id} logged in")
        return LoginResponse(
            user=self.credentials.to_public(user),
            access_token=access_token,
            refresh_token=issued.token,
            expires_in=self.settings.access_token_expires_seconds,
            refresh_expires_in=self.settings.refresh_token_expires_seconds,
        )

    async def refresh(self, raw_token: str, client: Optional[ClientInfo] = None) -> TokenRefreshResponse:
        """
        Exchange a refresh token for a new access token and a new refresh token.

        The presented token is consumed; presenting it again fails.
        """
        client = client or ClientInfo()
        claims = self.issuer.decode_refresh_token(raw_token)
        token_hash = hash_refresh_token(raw_token)

        user = await self.credentials.get_by_id(claims.user_id)
        if user is None or not user.is_active:
            await self.refresh_tokens.revoke_for_user(claims.user_id, token_hash)
            await self.db.commit()
            raise UnauthorizedError(_INVALID_REFRESH)

        issued = await self.refresh_tokens.rotate(
            token_hash,
            user_id=claims.user_id,
            token_id=claims.token_id,
            ip_address=client.ip_address,
            device_info=client.user_agent,
        )
        access_token = self.issuer.create_access_token(user)
        await self.db.commit()

        logger.info(f"Rotated refresh token for user {user.id}")
        return TokenRefreshResponse(
            access_token=access_token,
            refresh_token=issued.token,
            expires_in=self.settings.access_token_expires_seconds,
            refresh_expires_in=self.settings.refresh_token_expires_seconds,
        )

    async def logout(self, identity: TokenIdentity, refresh_token: Optional[str] = None) -> int:
        """
        Revoke the caller's refresh token, or all of them when none is named.

        Idempotent: already-revoked or foreign tokens are silently ignored.
        """
        if refresh_token:
            revoked = int(
                await self.refresh_tokens.revoke_for_user(identity.user_id, hash_refresh_token(refresh_token))
            )
        else:
            revoked = await self.refresh_tokens.revoke_all_for_user(identity.user_id)
        await self.db.commit()

        logger.info(f"User {identity.user_id} logged out ({revoked} refresh token(s) revoked)")
        return revoked

    async def verify(self, token: Optional[str]) -> VerifyResponse:
        """Polling-friendly check: an invalid token yields valid=False instead of an error."""
        try:
            identity = self.issuer.verify_access_token(token or "")
        except UnauthorizedError:
            return VerifyResponse(valid=False, user=None)

        user = await self.credentials.get_by_id(identity.user_id)
        if user is None:
            return VerifyResponse(valid=False, user=None)
        return VerifyResponse(valid=True, user=self.credentials.to_public(user))

    async def current_user(self, identity: TokenIdentity) -> PublicUser:
        user = await self.credentials.get_by_id(identity.user_id)
        if user is None:
            raise UnauthorizedError()
        return self.credentials.to_public(user)

    async def list_sessions(self, identity: TokenIdentity) -> list[SessionInfo]:
        records = await self.refresh_tokens.list_active_for_user(identity.user_id)
        return [SessionInfo.model_validate(r) for r in records]
