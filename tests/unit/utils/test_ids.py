"""Tests for UUID and short-id helpers."""

import pytest

from tritoncloud.utils.ids import is_uuid, normalize_short_id, short_id


class TestIsUuid:
    """Test UUID detection."""

    def test_lowercase_uuid(self):
        """Test a canonical lowercase UUID matches."""
        assert is_uuid("5e42cd1e-34bb-402f-8796-bf5a2cae47db")

    @pytest.mark.parametrize(
        "value",
        ["", "5e42cd1e", "5E42CD1E-34BB-402F-8796-BF5A2CAE47DB", "5e42cd1e34bb402f8796bf5a2cae47db"],
    )
    def test_not_uuid(self, value):
        """Test prefixes, uppercase and undashed forms are not UUIDs."""
        assert not is_uuid(value)

    def test_short_id(self):
        """Test the short id is the first segment."""
        assert short_id("5e42cd1e-34bb-402f-8796-bf5a2cae47db") == "5e42cd1e"


class TestNormalizeShortId:
    """Test short id normalization."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("b4f0", "b4f0"),
            ("b4f0b46c", "b4f0b46c"),
            ("b4f0b46c-", "b4f0b46c"),
            ("b4f0b46c183b", "b4f0b46c-183b"),
            ("b4f0b46c-183b", "b4f0b46c-183b"),
            ("5e42cd1e34bb402f8796bf5a2cae47db", "5e42cd1e-34bb-402f-8796-bf5a2cae47db"),
            ("5e42cd1e-34bb-402f-8796-bf5a2cae47db", "5e42cd1e-34bb-402f-8796-bf5a2cae47db"),
        ],
    )
    def test_valid(self, value, expected):
        """Test valid prefixes are dashed at segment boundaries."""
        assert normalize_short_id(value) == expected

    @pytest.mark.parametrize("value", ["", "web0", "B4F0", "b4f0-xyz", "5e42cd1e-34bb-402f-8796-bf5a2cae47db0"])
    def test_invalid(self, value):
        """Test names, uppercase and overlong values are not short ids."""
        assert normalize_short_id(value) is None

    def test_docker_id_kept(self):
        """Test 64-char docker ids pass through unchanged."""
        docker_id = "a" * 64
        assert normalize_short_id(docker_id) == docker_id

    def test_docker_id_must_be_hex(self):
        """Test long non-hex values are rejected."""
        assert normalize_short_id("z" * 40) is None
