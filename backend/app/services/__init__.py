# Services Package
# Re-exports for convenience

from app.services.auth import AuthService, ClientInfo, CredentialStore, RefreshTokenStore
from app.services.data import ProjectService

__all__ = [
    # Auth
    "AuthService",
    "ClientInfo",
    "CredentialStore",
    "RefreshTokenStore",
    # Data
    "ProjectService",
]
