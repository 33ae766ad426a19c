"""
Upload endpoints.
Handles raw-body uploads (curl -T) and multipart uploads.
"""
import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from oneshot.core.context import ServiceContext, get_context
from oneshot.core.multipart import MULTIPART_OVERHEAD_BYTES, MultipartUploadReader, is_multipart
from oneshot.core.rate_limit import client_address
from oneshot.core.security import (
    API_KEY_PARAM,
    check_form_api_key,
    require_api_key,
    require_api_key_or_form,
)
from oneshot.models import FileRecord
from oneshot.schemas import MessageResponse, UploadResponse

logger = logging.getLogger(__name__)

router = APIRouter()

_DISPOSITION_FILENAME_RE = re.compile(r'filename="([^"]*)"')

ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": MessageResponse},
    status.HTTP_401_UNAUTHORIZED: {"model": MessageResponse},
    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": MessageResponse},
}


def filename_from_disposition(header: Optional[str]) -> Optional[str]:
    """Extract filename="..." from a Content-Disposition header."""
    if not header:
        return None
    match = _DISPOSITION_FILENAME_RE.search(header)
    return match.group(1) if match else None


def declared_length(request: Request) -> Optional[int]:
    """Content-Length as an int, or None when absent or malformed."""
    value = request.headers.get("content-length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def build_download_url(request: Request, context: ServiceContext, record: FileRecord) -> str:
    """Public download link: <base>/d/<unique_id><extension>."""
    base = context.settings.PUBLIC_BASE_URL
    if not base:
        base = f"{request.url.scheme}://{request.headers.get('host', request.url.netloc)}"
    return f"{base.rstrip('/')}/d/{record.download_name}"


def no_file_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=MessageResponse(success=False, message="No file provided").model_dump(),
    )


@router.put(
    "/",
    response_class=PlainTextResponse,
    dependencies=[Depends(require_api_key)],
    responses=ERROR_RESPONSES,
)
async def upload_raw(
    request: Request,
    filename: Optional[str] = None,
    context: ServiceContext = Depends(get_context),
):
    """
    Upload the raw request body.

    The file name comes from Content-Disposition, then ?filename=, and
    defaults to upload.bin. Returns the download link as plain text.
    """
    name = filename_from_disposition(request.headers.get("content-disposition")) or filename

    record = await context.engine.admit(
        request.stream(),
        original_name=name,
        mime_type=request.headers.get("content-type"),
        declared_size=declared_length(request),
        owner_address=client_address(request),
    )

    return PlainTextResponse(build_download_url(request, context, record))


@router.post("/api/upload", response_model=UploadResponse, responses=ERROR_RESPONSES)
async def upload_multipart(
    request: Request,
    key_in_form: bool = Depends(require_api_key_or_form),
    context: ServiceContext = Depends(get_context),
):
    """
    Upload a file from a multipart form (field "file").

    The body is parsed as it arrives and the file part streams straight into
    the object store. An api_key form field must come before the file part.
    """
    length = declared_length(request)
    if length is not None:
        context.engine.check_declared_size(max(length - MULTIPART_OVERHEAD_BYTES, 0))

    if not is_multipart(request):
        return no_file_response()

    reader = MultipartUploadReader(request)
    part = await reader.read_until_file()
    if key_in_form:
        check_form_api_key(request, reader.fields.get(API_KEY_PARAM))
    if part is None:
        return no_file_response()

    record = await context.engine.admit(
        part.chunks,
        original_name=part.filename,
        mime_type=part.content_type,
        owner_address=client_address(request),
    )

    return UploadResponse(
        unique_id=record.unique_id,
        download_url=build_download_url(request, context, record),
        file_size=record.file_size,
        expires_at=record.expires_at,
    )
