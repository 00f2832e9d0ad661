"""
API v1 Router
"""

from fastapi import APIRouter
from . import activity, entities, notifications, tasks, time_entries

router = APIRouter()

router.include_router(entities.router, prefix="/entities", tags=["Entities"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(time_entries.router, tags=["Time"])
router.include_router(activity.router, prefix="/activity", tags=["Activity"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/entities/{kind}",
            "/tasks/{taskId}/transition",
            "/tasks/{taskId}/unblock",
            "/tasks/{taskId}/assign",
            "/tasks/{taskId}/tags",
            "/time-entries",
            "/activity",
            "/notifications",
        ],
    }
