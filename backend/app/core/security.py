"""
Password hashing and token issuance/verification.

- PasswordHasher: bcrypt with a configurable cost factor
- TokenIssuer: HS256 access tokens and refresh tokens signed with two independent secrets
"""

import asyncio
import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
from jose import jwt, JWTError
from jose.utils import base64url_decode, base64url_encode

from app.core.config import Settings
from app.core.errors import UnauthorizedError

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

# Same message for every verification failure so callers cannot probe for the reason
_INVALID_CREDENTIALS = "Could not validate credentials"


def _has_canonical_signature(token: str) -> bool:
    """
    Reject signature segments with non-zero padding bits.

    Base64url decoding ignores the unused low bits of the last character, so
    several spellings of one signature would otherwise all verify.
    """
    signature = token.rsplit(".", 1)[-1].encode("ascii", errors="replace")
    try:
        return base64url_encode(base64url_decode(signature)) == signature
    except ValueError:
        return False


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns of the models."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _prepare_password(password: str) -> bytes:
    """
    Prepare password for bcrypt by encoding and truncating to 72 bytes.

    Args:
        password: Plain text password

    Returns:
        Password bytes truncated to 72 bytes (bcrypt limit)
    """
    return password.encode("utf-8")[:72]


class PasswordHasher:
    """
    One-way salted password hashing.

    verify() never raises: a mismatch, an empty password or a malformed stored
    hash all come back as False.
    """

    def __init__(self, rounds: int = 12):
        self.rounds = rounds
        self._dummy_hash: Optional[str] = None

    def hash(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(_prepare_password(password), salt).decode("utf-8")

    def verify(self, password: str, hashed_password: Optional[str]) -> bool:
        if not password or not hashed_password:
            return False
        try:
            return bcrypt.checkpw(_prepare_password(password), hashed_password.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    async def hash_async(self, password: str) -> str:
        return await asyncio.to_thread(self.hash, password)

    async def verify_async(self, password: str, hashed_password: Optional[str]) -> bool:
        return await asyncio.to_thread(self.verify, password, hashed_password)

    async def dummy_verify_async(self, password: str) -> None:
        """Spend the same work as a real verify, for accounts that do not exist."""
        if self._dummy_hash is None:
            self._dummy_hash = await self.hash_async(secrets.token_urlsafe(16))
        await self.verify_async(password, self._dummy_hash)


@dataclass(frozen=True)
class TokenIdentity:
    """Identity claims extracted from a verified access token."""

    user_id: str
    email: str
    username: str
    jti: Optional[str]
    expires_at: datetime


@dataclass(frozen=True)
class RefreshClaims:
    user_id: str
    token_id: str
    expires_at: datetime


@dataclass(frozen=True)
class IssuedRefreshToken:
    """
    A freshly minted refresh token.

    token is handed to the client exactly once; only token_hash is persisted.
    """

    token: str
    token_id: str
    token_hash: str
    expires_at: datetime


def hash_refresh_token(raw_token: str) -> str:
    """
    Hash a raw refresh token for database lookup.

    Args:
        raw_token: The raw token received from the client

    Returns:
        SHA256 hex digest of the token (64 chars)
    """
    return hashlib.sha256(raw_token.encode()).hexdigest()


def generate_jti() -> str:
    return str(uuid.uuid4())


class TokenIssuer:
    """Creates and verifies access and refresh tokens."""

    def __init__(self, settings: Settings):
        self.access_secret = settings.ACCESS_TOKEN_SECRET
        self.refresh_secret = settings.REFRESH_TOKEN_SECRET
        self.algorithm = settings.ALGORITHM
        self.access_ttl = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self.refresh_ttl = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    def create_access_token(self, user: Any, expires_delta: Optional[timedelta] = None) -> str:
        """
        Create a JWT access token for a user.

        Args:
            user: Anything with id, email and username attributes
            expires_delta: Optional override of the configured TTL (negative values yield expired tokens)

        Returns:
            Encoded JWT token
        """
        now = utcnow()
        expire = now + (expires_delta if expires_delta is not None else self.access_ttl)
        to_encode = {
            "sub": str(user.id),
            "email": user.email,
            "username": user.username,
            "type": ACCESS_TOKEN_TYPE,
            "iat": int(now.replace(tzinfo=timezone.utc).timestamp()),
            "exp": int(expire.replace(tzinfo=timezone.utc).timestamp()),
            "jti": generate_jti(),
        }
        return jwt.encode(to_encode, self.access_secret, algorithm=self.algorithm)

    def create_refresh_token(self, user_id: str, expires_delta: Optional[timedelta] = None) -> IssuedRefreshToken:
        """
        Create a refresh token bound to user_id.

        The token carries a random nonce so two tokens issued in the same
        second for the same user never collide.
        """
        now = utcnow()
        expire = now + (expires_delta if expires_delta is not None else self.refresh_ttl)
        token_id = generate_jti()
        to_encode = {
            "sub": str(user_id),
            "type": REFRESH_TOKEN_TYPE,
            "jti": token_id,
            "nonce": secrets.token_urlsafe(32),
            "iat": int(now.replace(tzinfo=timezone.utc).timestamp()),
            "exp": int(expire.replace(tzinfo=timezone.utc).timestamp()),
        }
        token = jwt.encode(to_encode, self.refresh_secret, algorithm=self.algorithm)
        return IssuedRefreshToken(
            token=token,
            token_id=token_id,
            token_hash=hash_refresh_token(token),
            expires_at=expire,
        )

    def _decode(self, token: str, secret: str, expected_type: str) -> dict:
        if not token:
            raise UnauthorizedError(_INVALID_CREDENTIALS)
        if not _has_canonical_signature(token):
            raise UnauthorizedError(_INVALID_CREDENTIALS)
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require_exp": True, "require_sub": True, "require_iat": True},
            )
        except JWTError:
            raise UnauthorizedError(_INVALID_CREDENTIALS)

        if payload.get("type") != expected_type or not payload.get("sub"):
            raise UnauthorizedError(_INVALID_CREDENTIALS)
        return payload

    def verify_access_token(self, token: str) -> TokenIdentity:
        """Verify signature, expiry and type of an access token."""
        payload = self._decode(token, self.access_secret, ACCESS_TOKEN_TYPE)
        email = payload.get("email")
        username = payload.get("username")
        if not email or not username:
            raise UnauthorizedError(_INVALID_CREDENTIALS)
        return TokenIdentity(
            user_id=str(payload["sub"]),
            email=email,
            username=username,
            jti=payload.get("jti"),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc).replace(tzinfo=None),
        )

    def decode_refresh_token(self, token: str) -> RefreshClaims:
        """Verify signature, expiry and type of a refresh token."""
        payload = self._decode(token, self.refresh_secret, REFRESH_TOKEN_TYPE)
        token_id = payload.get("jti")
        if not token_id:
            raise UnauthorizedError(_INVALID_CREDENTIALS)
        return RefreshClaims(
            user_id=str(payload["sub"]),
            token_id=str(token_id),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc).replace(tzinfo=None),
        )
