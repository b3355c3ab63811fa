from datetime import datetime
from typing import Optional

from pydantic import Field

from app.schemas.user import CamelModel


class ProjectCreate(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=2000)


class ProjectUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=2000)


class ProjectOut(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    owner_id: str
    created_at: datetime
    updated_at: datetime


class ProjectList(CamelModel):
    projects: list[ProjectOut]
    total: int
