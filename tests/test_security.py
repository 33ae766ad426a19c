"""
Security tests for oneshot.
Tests for path traversal, identifier guessing and authentication bypass.
"""
import asyncio

import pytest

from oneshot.api.downloads import content_disposition, unique_id_from_filename
from oneshot.core.security import verify_api_key
from oneshot.main import create_app


@pytest.mark.security
class TestPathTraversal:
    """Download links must never reach outside the object store."""

    @pytest.mark.parametrize("filename", [
        "..%2F..%2Fetc%2Fpasswd",
        "....txt",
        "passwd",
        "0123456789abcdef0123456789abcdeg.txt",
    ])
    def test_malformed_links(self, client, filename):
        response = client.get(f"/d/{filename}")
        assert response.status_code == 404

    def test_sql_like_identifier(self, client):
        response = client.get("/api/files/1' OR '1'='1")
        assert response.status_code == 404

    def test_uploaded_name_cannot_escape(self, client, tmp_path):
        response = client.put(
            "/",
            content=b"data",
            headers={"Content-Disposition": 'attachment; filename="../../evil.sh"'},
        )
        assert response.status_code == 200
        assert not (tmp_path / "evil.sh").exists()

        stored = list((tmp_path / "uploads").iterdir())
        assert len(stored) == 1
        assert stored[0].name.endswith(".sh")


@pytest.mark.security
class TestHeaders:
    """Test download header construction."""

    def test_unique_id_from_filename(self):
        assert unique_id_from_filename("abc.tar.gz") == "abc"
        assert unique_id_from_filename("abc") == "abc"

    def test_ascii_name(self):
        assert content_disposition("report.pdf") == 'attachment; filename="report.pdf"'

    def test_quotes_stripped(self):
        assert content_disposition('a"b.txt') == 'attachment; filename="ab.txt"'

    def test_non_ascii_name(self):
        header = content_disposition("résumé.pdf")
        assert header.startswith('attachment; filename="r?sum?.pdf"')
        assert "filename*=UTF-8''r%C3%A9sum%C3%A9.pdf" in header
        header.encode("latin-1")


@pytest.mark.security
class TestApiKeyComparison:
    """Test the shared-secret comparison."""

    def test_disabled_without_key(self):
        assert verify_api_key(None, None)
        assert verify_api_key("", "anything")

    def test_match(self):
        assert verify_api_key("secret", "secret")

    @pytest.mark.parametrize("provided", [None, "", "Secret", "secret ", "secre"])
    def test_mismatch(self, provided):
        assert not verify_api_key("secret", provided)


BOUNDARY = "oneshot-test-boundary"
LARGE_BODY_SIZE = 8 * 1024 * 1024
CHUNK_SIZE = 16 * 1024


def multipart_file_body(size: int) -> bytes:
    head = (
        f"--{BOUNDARY}\r\n"
        f'Content-Disposition: form-data; name="file"; filename="big.bin"\r\n'
        f"Content-Type: application/octet-stream\r\n\r\n"
    ).encode()
    return head + b"x" * size + f"\r\n--{BOUNDARY}--\r\n".encode()


class CountingBody:
    """ASGI receive callable that counts the body bytes handed out."""

    def __init__(self, body: bytes):
        self.body = body
        self.offset = 0
        self.response_started = False

    async def receive(self):
        await asyncio.sleep(0)
        if self.response_started or self.offset >= len(self.body):
            return {"type": "http.disconnect"}
        chunk = self.body[self.offset:self.offset + CHUNK_SIZE]
        self.offset += len(chunk)
        return {"type": "http.request", "body": chunk, "more_body": self.offset < len(self.body)}


def send_upload(app, method: str, path: str, body: bytes, headers: dict):
    """Run one request through the ASGI app; return (status, bytes pulled)."""
    counter = CountingBody(body)
    messages = []

    async def send(message):
        if message["type"] == "http.response.start":
            counter.response_started = True
        messages.append(message)

    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": ("127.0.0.1", 50000),
        "server": ("testserver", 80),
    }
    asyncio.run(app(scope, counter.receive, send))

    status = next(m["status"] for m in messages if m["type"] == "http.response.start")
    return status, counter.offset


@pytest.mark.security
class TestRejectedUploadsAreNotRead:
    """Oversized or unauthenticated uploads are refused before the body is read."""

    def multipart_headers(self, body: bytes, **extra) -> dict:
        headers = {
            "content-type": f"multipart/form-data; boundary={BOUNDARY}",
            "content-length": str(len(body)),
        }
        headers.update(extra)
        return headers

    def test_oversized_multipart(self, settings_factory):
        app = create_app(settings_factory())
        body = multipart_file_body(LARGE_BODY_SIZE)

        status, consumed = send_upload(app, "POST", "/api/upload", body, self.multipart_headers(body))

        assert status == 413
        assert consumed < 16 * CHUNK_SIZE

    def test_oversized_raw(self, settings_factory):
        app = create_app(settings_factory())
        body = b"x" * LARGE_BODY_SIZE

        status, consumed = send_upload(app, "PUT", "/", body, {"content-length": str(len(body))})

        assert status == 413
        assert consumed < 16 * CHUNK_SIZE

    def test_multipart_without_key(self, settings_factory):
        app = create_app(settings_factory(API_KEY="test-shared-secret", MAX_UPLOAD_SIZE="100MB"))
        body = multipart_file_body(LARGE_BODY_SIZE)

        status, consumed = send_upload(app, "POST", "/api/upload", body, self.multipart_headers(body))

        assert status == 401
        assert consumed < 16 * CHUNK_SIZE

    def test_multipart_with_wrong_header_key(self, settings_factory):
        app = create_app(settings_factory(API_KEY="test-shared-secret", MAX_UPLOAD_SIZE="100MB"))
        body = multipart_file_body(LARGE_BODY_SIZE)
        headers = self.multipart_headers(body, **{"x-api-key": "wrong"})

        status, consumed = send_upload(app, "POST", "/api/upload", body, headers)

        assert status == 401
        assert consumed < 16 * CHUNK_SIZE

    def test_form_key_after_file_rejected(self, authenticated_app_client, api_key, tmp_path):
        body = (
            f"--{BOUNDARY}\r\n"
            f'Content-Disposition: form-data; name="file"; filename="a.txt"\r\n\r\n'
            f"abc\r\n"
            f"--{BOUNDARY}\r\n"
            f'Content-Disposition: form-data; name="api_key"\r\n\r\n'
            f"{api_key}\r\n"
            f"--{BOUNDARY}--\r\n"
        ).encode()

        response = authenticated_app_client.post(
            "/api/upload",
            content=body,
            headers={"Content-Type": f"multipart/form-data; boundary={BOUNDARY}"},
        )

        assert response.status_code == 401
        assert list((tmp_path / "uploads").iterdir()) == []
