"""
Security module for shared-secret authentication.

When API_KEY is configured, uploads and the JSON API require it. Download
links are never gated.
"""
import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader, APIKeyQuery

from oneshot.core.multipart import is_multipart

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
API_KEY_PARAM = "api_key"

UNAUTHORIZED_MESSAGE = "Invalid or missing API key"

# Key schemes (optional: the gate may be disabled)
api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)
api_key_query = APIKeyQuery(name=API_KEY_PARAM, auto_error=False)


def verify_api_key(expected: Optional[str], provided: Optional[str]) -> bool:
    """
    Compare a provided key with the configured one in constant time.

    Args:
        expected: Configured key (None or empty disables the check)
        provided: Key sent by the client

    Returns:
        bool: True if access is allowed
    """
    if not expected:
        return True
    if not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def _configured_key(request: Request) -> Optional[str]:
    return request.app.state.context.settings.API_KEY


def _reject(request: Request) -> None:
    logger.warning(f"Rejected request to {request.url.path}: {UNAUTHORIZED_MESSAGE}")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=UNAUTHORIZED_MESSAGE,
        headers={"WWW-Authenticate": "ApiKey"},
    )


async def require_api_key(
    request: Request,
    header_key: Optional[str] = Security(api_key_header),
    query_key: Optional[str] = Security(api_key_query),
) -> None:
    """
    FastAPI dependency for the shared-secret gate.

    The key is taken from the X-API-Key header, then the api_key query
    parameter. The request body is never read.

    Raises:
        HTTPException: 401 if a key is configured and not matched
    """
    expected = _configured_key(request)
    if expected and not verify_api_key(expected, header_key or query_key):
        _reject(request)


async def require_api_key_or_form(
    request: Request,
    header_key: Optional[str] = Security(api_key_header),
    query_key: Optional[str] = Security(api_key_query),
) -> bool:
    """
    Shared-secret gate for multipart uploads.

    Same as require_api_key, except that a multipart request without a
    header or query key may carry it in the api_key form field instead.
    The field is not read here.

    Returns:
        bool: True if the caller must still pass the api_key form field to
            check_form_api_key() before reading any file bytes

    Raises:
        HTTPException: 401 if a key is configured and cannot match
    """
    expected = _configured_key(request)
    if not expected:
        return False

    provided = header_key or query_key
    if provided:
        if not verify_api_key(expected, provided):
            _reject(request)
        return False

    if not is_multipart(request):
        _reject(request)
    return True


def check_form_api_key(request: Request, provided: Optional[str]) -> None:
    """
    Verify a key read from the api_key form field.

    Raises:
        HTTPException: 401 if a key is configured and not matched
    """
    if not verify_api_key(_configured_key(request), provided):
        _reject(request)
