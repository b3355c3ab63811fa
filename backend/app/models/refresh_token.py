"""
Refresh Token model for secure token rotation.
Stores hashed refresh tokens with expiration and revocation tracking.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from app.core.security import utcnow
from app.db.base_class import Base


class RefreshToken(Base):
    """
    Stores refresh tokens for JWT token rotation.

    Security features:
    - Token is hashed (SHA256) before storage - raw token never stored
    - Automatic expiration tracking
    - Revocation support for logout and rotation; revoked rows are kept for audit
    - Device tracking for multi-device management
    """
    __tablename__ = "refresh_tokens"  # type: ignore[assignment]

    # Equal to the jti claim of the token
    id = Column(String(36), primary_key=True)

    # SHA256 hash of the refresh token (never store raw token)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Lifecycle timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)  # Set when token is revoked
    last_used_at = Column(DateTime, nullable=True)  # Set when consumed by rotation

    # Optional device tracking for security auditing
    device_info = Column(String(255), nullable=True)
    ip_address = Column(String(45), nullable=True)  # IPv6 max length

    user = relationship("User", back_populates="refresh_tokens")

    # Composite index for efficient cleanup queries
    __table_args__ = (
        Index("ix_refresh_tokens_user_expires", "user_id", "expires_at"),
        Index("ix_refresh_tokens_cleanup", "expires_at", "revoked_at"),
    )
