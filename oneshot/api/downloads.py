"""
Download Endpoints

Serves one-shot download links. Each successful request consumes one of the
object's permitted downloads before any byte is sent. Never gated by the
API key: the link itself is the credential.
"""
import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from oneshot.core.context import ServiceContext, get_context

logger = logging.getLogger(__name__)

router = APIRouter(tags=["downloads"])

DEFAULT_MEDIA_TYPE = "application/octet-stream"


def unique_id_from_filename(filename: str) -> str:
    """Identifier part of "<unique_id><extension>"."""
    return filename.split(".", 1)[0]


def content_disposition(original_name: str) -> str:
    """
    Attachment header carrying the original name.

    Non-ASCII names get an RFC 5987 filename* parameter next to an ASCII
    fallback.
    """
    fallback = original_name.encode("ascii", "replace").decode("ascii")
    quoted = fallback.replace('"', "")
    header = f'attachment; filename="{quoted}"'
    if fallback != original_name:
        header += f"; filename*=UTF-8''{quote(original_name, safe='')}"
    return header


@router.get("/d/{filename}")
@router.get("/download/{filename}")
def download_file(filename: str, context: ServiceContext = Depends(get_context)):
    """
    Stream a file and count the download.

    - 404 if the link is unknown
    - 410 if the file expired or has no downloads left
    """
    retrieval = context.engine.retrieve(unique_id_from_filename(filename))
    record = retrieval.record

    headers = {
        "Content-Disposition": content_disposition(record.original_name),
        "Content-Length": str(record.file_size),
        "Cache-Control": "no-store",
    }
    return StreamingResponse(
        retrieval.iter_chunks(),
        media_type=record.mime_type or DEFAULT_MEDIA_TYPE,
        headers=headers,
        # Also runs when the body is never iterated.
        background=BackgroundTask(retrieval.close),
    )
