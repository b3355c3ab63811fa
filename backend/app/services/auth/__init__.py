# Auth Services Package
# Credential storage, refresh token rotation and the auth orchestrator

from app.services.auth.credential_store import CredentialStore, normalize_email
from app.services.auth.refresh_token_store import RefreshTokenStore
from app.services.auth.auth_service import AuthService, ClientInfo

__all__ = [
    "CredentialStore",
    "normalize_email",
    "RefreshTokenStore",
    "AuthService",
    "ClientInfo",
]
