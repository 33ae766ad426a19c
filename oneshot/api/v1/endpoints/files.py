"""
File metadata and statistics endpoints.
"""
from fastapi import APIRouter, Depends

from oneshot.core.context import ServiceContext, get_context
from oneshot.core.security import require_api_key
from oneshot.core.units import format_bytes
from oneshot.schemas import FileInfo, FileInfoResponse, MessageResponse, StatsResponse

router = APIRouter(
    dependencies=[Depends(require_api_key)],
    responses={401: {"model": MessageResponse}},
)


@router.get(
    "/files/{unique_id}",
    response_model=FileInfoResponse,
    responses={404: {"model": MessageResponse}},
)
def get_file_info(unique_id: str, context: ServiceContext = Depends(get_context)):
    """
    Describe a stored file. Read-only: does not count as a download and
    does not evict.
    """
    record = context.engine.describe(unique_id)
    return FileInfoResponse(data=FileInfo.model_validate(record))


@router.get("/stats", response_model=StatsResponse)
def get_stats(context: ServiceContext = Depends(get_context)):
    """Count and total size of stored files."""
    stats = context.engine.stats()
    return StatsResponse(
        total_files=stats.total_files,
        total_size=stats.total_size,
        total_size_formatted=format_bytes(stats.total_size),
    )
