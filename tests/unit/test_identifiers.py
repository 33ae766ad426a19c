"""
Unit tests for object identifiers.
Tests oneshot/core/identifiers.py
"""
import pytest

from oneshot.core.identifiers import UNIQUE_ID_LENGTH, generate_unique_id, is_valid_unique_id


@pytest.mark.unit
class TestGenerateUniqueId:
    """Test generate_unique_id."""

    def test_format(self):
        unique_id = generate_unique_id()
        assert len(unique_id) == UNIQUE_ID_LENGTH == 32
        assert is_valid_unique_id(unique_id)

    def test_no_collisions(self):
        ids = {generate_unique_id() for _ in range(2000)}
        assert len(ids) == 2000


@pytest.mark.unit
class TestIsValidUniqueId:
    """Test is_valid_unique_id."""

    @pytest.mark.parametrize("value", [
        "",
        "abc",
        "0" * 31,
        "0" * 33,
        "G" * 32,
        "ABCDEF0123456789ABCDEF0123456789",
        "../../etc/passwd",
        "0" * 32 + "\n",
        None,
    ])
    def test_rejects(self, value):
        assert not is_valid_unique_id(value)
