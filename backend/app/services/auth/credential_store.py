"""
Credential Store: persisted user records.

The password hash never leaves this module; callers get PublicUser projections.
"""

import logging
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import PasswordHasher, utcnow
from app.models.user import User
from app.schemas.user import PublicUser

logger = logging.getLogger("webide.credentials")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CredentialStore:
    def __init__(self, db: AsyncSession, hasher: PasswordHasher):
        self.db = db
        self.hasher = hasher

    @staticmethod
    def to_public(user: User) -> PublicUser:
        return PublicUser.model_validate(user)

    async def get_by_id(self, user_id: str) -> Optional[User]:
        return await self.db.scalar(select(User).where(User.id == user_id))

    async def get_by_email(self, email: str) -> Optional[User]:
        return await self.db.scalar(select(User).where(User.email == normalize_email(email)))

    async def find_conflicts(self, email: str, username: str) -> list[str]:
        """Return the names of the fields ("email", "username") already in use."""
        email = normalize_email(email)
        result = await self.db.execute(
            select(User.email, User.username).where(
                or_(User.email == email, func.lower(User.username) == username.lower())
            )
        )
        conflicts = set()
        for existing_email, existing_username in result.all():
            if existing_email == email:
                conflicts.add("email")
            if existing_username.lower() == username.lower():
                conflicts.add("username")
        return sorted(conflicts)

    async def create(self, email: str, username: str, password: str) -> User:
        """Hash the password and add a new user to the session (flushed, not committed)."""
        user = User(
            email=normalize_email(email),
            username=username,
            hashed_password=await self.hasher.hash_async(password),
            is_active=True,
            is_verified=False,
        )
        self.db.add(user)
        await self.db.flush()
        return user

    async def authenticate(self, email: str, password: str) -> Optional[User]:
        """
        Return the user when email and password match an active account, else None.

        Unknown email, wrong password and inactive account are indistinguishable to the caller.
        """
        user = await self.get_by_email(email)
        if user is None:
            # Same bcrypt work as a real check so response time does not reveal unknown emails
            await self.hasher.dummy_verify_async(password)
            return None

        if not await self.hasher.verify_async(password, user.hashed_password):
            return None

        if not user.is_active:
            logger.info(f"Login attempt for inactive user {user.id}")
            return None

        return user

    async def record_login(self, user: User) -> None:
        user.last_login = utcnow()
        await self.db.flush()
