import uuid

from sqlalchemy import Column, String, Boolean, DateTime, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.security import utcnow
from app.db.base_class import Base


def _uuid_str() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"  # type: ignore[assignment]

    id = Column(String(36), primary_key=True, default=_uuid_str)
    # Stored normalized (trimmed, lower-cased) so uniqueness is case-insensitive
    email = Column(String(320), unique=True, index=True, nullable=False)
    username = Column(String(50), index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)
    last_login = Column(DateTime, nullable=True)

    refresh_tokens = relationship(
        "RefreshToken", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    projects = relationship(
        "Project", back_populates="owner", cascade="all, delete-orphan", passive_deletes=True
    )

    # Usernames keep their case but are unique regardless of it
    __table_args__ = (Index("uq_users_username_lower", func.lower(username), unique=True),)

    def __repr__(self) -> str:
        return f"<User {self.id} {self.username}>"
