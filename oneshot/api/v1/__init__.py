"""
API router aggregation.
"""
from fastapi import APIRouter
from oneshot.api.v1.endpoints import files, uploads
from oneshot.api import downloads

api_router = APIRouter()

# Include upload endpoints (PUT / and POST /api/upload)
api_router.include_router(uploads.router, tags=["uploads"])

# Include file metadata endpoints
api_router.include_router(files.router, prefix="/api", tags=["files"])

# Include download endpoints
api_router.include_router(downloads.router)

__all__ = ["api_router"]
