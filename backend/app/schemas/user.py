from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"


class CamelModel(BaseModel):
    """Base for wire schemas: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserCreate(CamelModel):
    email: EmailStr
    # The SPA historically posted "name"; both spellings are accepted
    username: str = Field(
        min_length=3,
        max_length=50,
        pattern=USERNAME_PATTERN,
        validation_alias=AliasChoices("username", "name"),
    )
    password: str = Field(min_length=1, max_length=1024)


class PublicUser(CamelModel):
    """User projection safe to hand to clients; never carries the password hash."""

    id: str
    email: str
    username: str
    is_verified: bool = False
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None
