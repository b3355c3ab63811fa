from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status

from app.api.deps import get_current_identity, get_project_service
from app.core.rate_limiter import RateLimits, limiter, rate_limiting_disabled
from app.core.security import TokenIdentity
from app.schemas.project import ProjectCreate, ProjectList, ProjectOut, ProjectUpdate
from app.services.data import ProjectService

router = APIRouter()


@router.get("/projects", response_model=ProjectList)
async def list_projects(
    identity: TokenIdentity = Depends(get_current_identity),
    service: ProjectService = Depends(get_project_service),
) -> Any:
    """List projects owned by the current user, newest first."""
    projects = await service.list_projects(identity.user_id)
    total = await service.count_projects(identity.user_id)
    return ProjectList(projects=projects, total=total)


@router.post("/projects", response_model=ProjectOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(RateLimits.API_WRITE, exempt_when=rate_limiting_disabled)
async def create_project(
    request: Request,
    project_in: ProjectCreate,
    identity: TokenIdentity = Depends(get_current_identity),
    service: ProjectService = Depends(get_project_service),
) -> Any:
    """Create a project. Names are unique per owner."""
    return await service.create_project(identity.user_id, project_in)


@router.get("/projects/{project_id}", response_model=ProjectOut)
async def get_project(
    project_id: str,
    identity: TokenIdentity = Depends(get_current_identity),
    service: ProjectService = Depends(get_project_service),
) -> Any:
    """Fetch a single project by id."""
    return await service.get_project(identity.user_id, project_id)


@router.patch("/projects/{project_id}", response_model=ProjectOut)
@limiter.limit(RateLimits.API_WRITE, exempt_when=rate_limiting_disabled)
async def update_project(
    request: Request,
    project_id: str,
    project_in: ProjectUpdate,
    identity: TokenIdentity = Depends(get_current_identity),
    service: ProjectService = Depends(get_project_service),
) -> Any:
    return await service.update_project(identity.user_id, project_id, project_in)


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: str,
    identity: TokenIdentity = Depends(get_current_identity),
    service: ProjectService = Depends(get_project_service),
) -> Response:
    await service.delete_project(identity.user_id, project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
