from datetime import datetime
from typing import Optional

from pydantic import Field

from app.schemas.user import CamelModel, PublicUser


class LoginRequest(CamelModel):
    # Plain str: a malformed email must fail exactly like a wrong password
    email: str = Field(min_length=1, max_length=320)
    password: str = Field(min_length=1, max_length=1024)


class LoginResponse(CamelModel):
    user: PublicUser
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_in: int


class TokenRefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class TokenRefreshResponse(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_in: int


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None


class LogoutResponse(CamelModel):
    message: str = "Successfully logged out"
    revoked: int = 0


class VerifyResponse(CamelModel):
    valid: bool
    user: Optional[PublicUser] = None


class SessionInfo(CamelModel):
    id: str
    created_at: datetime
    expires_at: datetime
    last_used_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    device_info: Optional[str] = None


class SessionList(CamelModel):
    sessions: list[SessionInfo]
