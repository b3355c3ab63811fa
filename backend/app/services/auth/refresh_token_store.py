"""
Refresh Token Store & Rotation.

Only SHA256 hashes of refresh tokens are stored. Rotation is a single
conditional UPDATE (revoke-where-active) followed by an insert of the
successor, both inside the caller's transaction; the rowcount of the UPDATE
decides which of several concurrent refresh attempts wins.
"""

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import UnauthorizedError
from app.core.security import IssuedRefreshToken, TokenIssuer, utcnow
from app.models.refresh_token import RefreshToken

logger = logging.getLogger("webide.refresh_tokens")

_INVALID_REFRESH = "Invalid or expired refresh token"


class RefreshTokenStore:
    def __init__(self, db: AsyncSession, issuer: TokenIssuer):
        self.db = db
        self.issuer = issuer

    async def persist(
        self,
        user_id: str,
        issued: IssuedRefreshToken,
        ip_address: Optional[str] = None,
        device_info: Optional[str] = None,
    ) -> str:
        """Store the hash of an issued token; returns the record id (the token's jti)."""
        record = RefreshToken(
            id=issued.token_id,
            token_hash=issued.token_hash,
            user_id=user_id,
            expires_at=issued.expires_at,
            ip_address=ip_address,
            device_info=device_info[:255] if device_info else None,
        )
        self.db.add(record)
        await self.db.flush()
        return record.id

    async def issue(
        self,
        user_id: str,
        ip_address: Optional[str] = None,
        device_info: Optional[str] = None,
    ) -> IssuedRefreshToken:
        issued = self.issuer.create_refresh_token(user_id)
        await self.persist(user_id, issued, ip_address, device_info)
        return issued

    async def find_active(self, token_hash: str) -> Optional[RefreshToken]:
        return await self.db.scalar(
            select(RefreshToken).where(
                RefreshToken.token_hash == token_hash,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > utcnow(),
            )
        )

    async def revoke(self, record_id: str) -> bool:
        """
        Revoke one record. Returns False when it was already revoked or does not exist;
        that is not an error.
        """
        result = await self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.id == record_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def revoke_for_user(self, user_id: str, token_hash: str) -> bool:
        """Revoke the record with this hash only if it belongs to user_id."""
        result = await self.db.execute(
            update(RefreshToken)
            .where(
                RefreshToken.token_hash == token_hash,
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
            )
            .values(revoked_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def revoke_all_for_user(self, user_id: str) -> int:
        """
        Revoke all refresh tokens for a user.

        Returns:
            Number of tokens revoked
        """
        result = await self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def rotate(
        self,
        old_token_hash: str,
        user_id: str,
        token_id: str,
        ip_address: Optional[str] = None,
        device_info: Optional[str] = None,
    ) -> IssuedRefreshToken:
        """
        Consume the active record identified by old_token_hash and issue its successor.

        Raises UnauthorizedError when the record is missing, revoked (replay) or expired.
        The caller commits; nothing is visible until then.
        """
        now = utcnow()
        result = await self.db.execute(
            update(RefreshToken)
            .where(
                RefreshToken.token_hash == old_token_hash,
                RefreshToken.id == token_id,
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > now,
            )
            .values(revoked_at=now, last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(f"Refresh token rejected for user {user_id} (revoked, expired or unknown)")
            raise UnauthorizedError(_INVALID_REFRESH)

        return await self.issue(user_id, ip_address, device_info)

    async def list_active_for_user(self, user_id: str) -> list[RefreshToken]:
        result = await self.db.execute(
            select(RefreshToken)
            .where(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > utcnow(),
            )
            .order_by(RefreshToken.created_at.desc())
        )
        return list(result.scalars().all())
