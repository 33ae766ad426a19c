"""
Object identifier generation.
"""
import re
import secrets

UNIQUE_ID_BYTES = 16
UNIQUE_ID_LENGTH = UNIQUE_ID_BYTES * 2

_UNIQUE_ID_RE = re.compile(rf"^[0-9a-f]{{{UNIQUE_ID_LENGTH}}}$")


def generate_unique_id() -> str:
    """
    Generate a new object identifier.

    Returns:
        str: 32 lowercase hex characters (128 random bits from the OS CSPRNG)
    """
    return secrets.token_hex(UNIQUE_ID_BYTES)


def is_valid_unique_id(value: str) -> bool:
    """Check that a value has the shape of a generated identifier."""
    return bool(value) and _UNIQUE_ID_RE.fullmatch(value) is not None
