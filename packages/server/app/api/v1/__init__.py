"""
API v1 Router

Workspace, project and notification endpoints. Authentication routes are
mounted separately under /auth.
"""

from fastapi import APIRouter
from . import notifications, projects, workspaces

router = APIRouter()

router.include_router(workspaces.router, prefix="/workspaces", tags=["Workspaces"])
router.include_router(projects.router, prefix="/projects", tags=["Projects"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])


@router.get("/", tags=["API"])
async def api_root():
    """API root, returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/workspaces",
            "/workspaces/{workspaceId}/projects",
            "/projects/{projectId}",
            "/notifications",
        ],
    }
