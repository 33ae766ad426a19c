"""
Streaming multipart/form-data reader for uploads.

Feeds the request body through python-multipart's push parser, so the file
part reaches the object store while it is still arriving instead of being
spooled to a temporary file first. Text fields before the file part are
collected; the body after the file part is never read.
"""
import logging
from collections import deque
from dataclasses import dataclass
from typing import AsyncIterator, Deque, Dict, Optional, Tuple

from fastapi import HTTPException, Request, status
from python_multipart import MultipartParser
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import parse_options_header

logger = logging.getLogger(__name__)

MULTIPART_CONTENT_TYPE = b"multipart/form-data"

# Boundaries, part headers and text fields allowed around the file bytes.
MULTIPART_OVERHEAD_BYTES = 64 * 1024

MAX_FORM_FIELDS = 16

# Parser events
_PART_BEGIN = "part_begin"
_HEADER = "header"
_HEADERS_DONE = "headers_done"
_DATA = "data"
_PART_END = "part_end"


def is_multipart(request: Request) -> bool:
    """True for a multipart/form-data request that names its boundary."""
    content_type, params = parse_options_header(request.headers.get("content-type", ""))
    return content_type == MULTIPART_CONTENT_TYPE and bool(params.get(b"boundary"))


def malformed(detail: str = "Malformed multipart body") -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


@dataclass
class FilePart:
    """A form file part whose content is still on the wire."""
    field_name: str
    filename: str
    content_type: Optional[str]
    chunks: AsyncIterator[bytes]


class MultipartUploadReader:
    """
    Incremental reader for one multipart upload request.

    Usage:
        reader = MultipartUploadReader(request)
        part = await reader.read_until_file()   # stops at the file content
        reader.fields                          # text fields seen so far
        await engine.admit(part.chunks, part.filename)
    """

    def __init__(self, request: Request, file_field: str = "file"):
        _, params = parse_options_header(request.headers.get("content-type", ""))
        boundary = params.get(b"boundary")
        if not boundary:
            raise malformed("Missing multipart boundary")

        self.file_field = file_field
        self.fields: Dict[str, str] = {}
        self.preamble_bytes = 0

        self._body = request.stream()
        self._pending: Deque[Tuple] = deque()
        self._header_field = bytearray()
        self._header_value = bytearray()
        self._parser = MultipartParser(boundary, {
            "on_part_begin": self._on_part_begin,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
        })
        self._events = self._iter_events()

    # ------------------------------------------------------------------
    # Parser callbacks
    # ------------------------------------------------------------------

    def _on_part_begin(self) -> None:
        self._pending.append((_PART_BEGIN,))

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._pending.append((_DATA, bytes(data[start:end])))

    def _on_part_end(self) -> None:
        self._pending.append((_PART_END,))

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field.extend(data[start:end])

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value.extend(data[start:end])

    def _on_header_end(self) -> None:
        self._pending.append((_HEADER, bytes(self._header_field).lower(), bytes(self._header_value)))
        self._header_field.clear()
        self._header_value.clear()

    def _on_headers_finished(self) -> None:
        self._pending.append((_HEADERS_DONE,))

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def _iter_events(self):
        async for chunk in self._body:
            if not chunk:
                continue
            try:
                self._parser.write(chunk)
            except MultipartParseError as e:
                logger.info(f"Rejected multipart body: {e}")
                raise malformed() from e
            while self._pending:
                yield self._pending.popleft()

        self._parser.finalize()
        while self._pending:
            yield self._pending.popleft()

    async def read_until_file(self) -> Optional[FilePart]:
        """
        Consume the body up to the first byte of the file part's content.

        Returns:
            FilePart, or None if the body has no file in the file field

        Raises:
            HTTPException: 400 for a malformed body, or when more than
                MULTIPART_OVERHEAD_BYTES of other parts precede the file
        """
        headers: Dict[bytes, bytes] = {}
        name = ""
        value = bytearray()
        is_file = False

        async for event in self._events:
            kind = event[0]

            if kind == _PART_BEGIN:
                headers = {}
                name = ""
                value = bytearray()
                is_file = False

            elif kind == _HEADER:
                headers[event[1]] = event[2]

            elif kind == _HEADERS_DONE:
                _, options = parse_options_header(headers.get(b"content-disposition", b""))
                name = options.get(b"name", b"").decode("utf-8", "replace")
                filename = options.get(b"filename")
                is_file = filename is not None
                # Browsers send an empty filename when nothing was selected.
                if is_file and filename and name == self.file_field:
                    content_type = headers.get(b"content-type", b"").decode("latin-1").strip()
                    return FilePart(
                        field_name=name,
                        filename=filename.decode("utf-8", "replace"),
                        content_type=content_type or None,
                        chunks=self._file_chunks(),
                    )

            elif kind == _DATA:
                self.preamble_bytes += len(event[1])
                if self.preamble_bytes > MULTIPART_OVERHEAD_BYTES:
                    raise malformed("Form fields before the file are too large")
                if not is_file:
                    value.extend(event[1])

            elif kind == _PART_END:
                if name and not is_file:
                    if len(self.fields) >= MAX_FORM_FIELDS:
                        raise malformed("Too many form fields")
                    self.fields.setdefault(name, value.decode("utf-8", "replace"))

        return None

    async def _file_chunks(self) -> AsyncIterator[bytes]:
        async for event in self._events:
            if event[0] == _DATA:
                yield event[1]
            elif event[0] == _PART_END:
                return
        raise malformed("Multipart body ended inside the file part")
