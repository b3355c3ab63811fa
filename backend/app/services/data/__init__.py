# Data Services Package
# Owner-scoped project management

from app.services.data.project_service import ProjectService

__all__ = ["ProjectService"]
