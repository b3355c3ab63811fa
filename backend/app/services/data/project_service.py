"""Owner-scoped project CRUD."""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.models.project import Project
from app.schemas.project import ProjectCreate, ProjectOut, ProjectUpdate

logger = logging.getLogger("webide.projects")


class ProjectService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _name_taken(self, owner_id: str, name: str, exclude_id: Optional[str] = None) -> bool:
        query = select(Project.id).where(Project.owner_id == owner_id, Project.name == name)
        if exclude_id:
            query = query.where(Project.id != exclude_id)
        return await self.db.scalar(query) is not None

    async def _get_owned(self, owner_id: str, project_id: str) -> Project:
        # Another user's project is reported exactly like a missing one
        project = await self.db.scalar(
            select(Project).where(Project.id == project_id, Project.owner_id == owner_id)
        )
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    async def _commit(self, project: Project) -> None:
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(
                f"A project named '{project.name}' already exists",
                details=[{"field": "name"}],
            )
        await self.db.refresh(project)

    async def list_projects(self, owner_id: str) -> list[ProjectOut]:
        result = await self.db.scalars(
            select(Project).where(Project.owner_id == owner_id).order_by(Project.created_at.desc(), Project.name)
        )
        return [ProjectOut.model_validate(p) for p in result.all()]

    async def count_projects(self, owner_id: str) -> int:
        return await self.db.scalar(select(func.count()).select_from(Project).where(Project.owner_id == owner_id)) or 0

    async def create_project(self, owner_id: str, data: ProjectCreate) -> ProjectOut:
        name = data.name.strip()
        if not name:
            raise ValidationError(details=[{"field": "name", "message": "Project name must not be blank"}])
        if await self._name_taken(owner_id, name):
            raise ConflictError(f"A project named '{name}' already exists", details=[{"field": "name"}])

        project = Project(owner_id=owner_id, name=name, description=data.description)
        self.db.add(project)
        await self._commit(project)

        logger.info(f"User {owner_id} created project {project.id}")
        return ProjectOut.model_validate(project)

    async def get_project(self, owner_id: str, project_id: str) -> ProjectOut:
        return ProjectOut.model_validate(await self._get_owned(owner_id, project_id))

    async def update_project(self, owner_id: str, project_id: str, data: ProjectUpdate) -> ProjectOut:
        project = await self._get_owned(owner_id, project_id)
        changes = data.model_dump(exclude_unset=True)

        if changes.get("name") is not None:
            name = changes["name"].strip()
            if not name:
                raise ValidationError(details=[{"field": "name", "message": "Project name must not be blank"}])
            if name != project.name and await self._name_taken(owner_id, name, exclude_id=project.id):
                raise ConflictError(f"A project named '{name}' already exists", details=[{"field": "name"}])
            project.name = name
        if "description" in changes:
            project.description = changes["description"]

        await self._commit(project)
        return ProjectOut.model_validate(project)

    async def delete_project(self, owner_id: str, project_id: str) -> None:
        project = await self._get_owned(owner_id, project_id)
        await self.db.delete(project)
        await self.db.commit()
        logger.info(f"User {owner_id} deleted project {project_id}")
