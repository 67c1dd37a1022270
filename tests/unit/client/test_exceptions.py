"""Tests for the error taxonomy."""

import pytest

from tritoncloud.exceptions import (
    GenericHttpError,
    InstanceDeletedError,
    KeyLockedError,
    ResourceNotFoundError,
    SelfSignedCertError,
    ServerError,
    SigningError,
    TritonError,
    UsageError,
    WaitTimeoutError,
    is_not_found,
)


class TestNames:
    """Test error names used in messages and JSON output."""

    @pytest.mark.parametrize(
        "err,name",
        [
            (TritonError("x"), "TritonError"),
            (UsageError("x"), "UsageError"),
            (KeyLockedError("x"), "KeyLockedError"),
            (WaitTimeoutError("x"), "TimeoutError"),
            (InstanceDeletedError("x"), "InstanceDeletedError"),
            (ServerError("InvalidArgument", "x", 409), "InvalidArgumentError"),
            (ServerError("NotAuthorizedError", "x", 403), "NotAuthorizedError"),
            (GenericHttpError("x", 404), "NotFoundError"),
            (GenericHttpError("x", 599), "Http599Error"),
        ],
    )
    def test_name(self, err, name):
        """Test each error reports its taxonomy name."""
        assert err.name == name

    def test_key_locked_is_signing_error(self):
        """Test KeyLockedError is a SigningError."""
        assert isinstance(KeyLockedError("x"), SigningError)

    def test_self_signed_message(self):
        """Test the self-signed certificate message points at the insecure option."""
        err = SelfSignedCertError("https://cloudapi.test.example.com")
        assert "self-signed" in err.message
        assert "insecure" in err.message


class TestExitStatus:
    """Test CLI exit statuses."""

    def test_statuses(self):
        """Test usage, not found and generic errors map to 2, 3 and 1."""
        assert UsageError("x").exit_status == 2
        assert ResourceNotFoundError("x").exit_status == 3
        assert TritonError("x").exit_status == 1


class TestToDict:
    """Test JSON serialization."""

    def test_http_error_includes_status(self):
        """Test HTTP errors carry their status code."""
        data = ServerError("ResourceNotFound", "gone", 404).to_dict()
        assert data == {"error": "ResourceNotFoundError", "message": "gone", "statusCode": 404}

    def test_details(self):
        """Test details are included when present."""
        assert TritonError("x", details={"a": 1}).to_dict()["details"] == {"a": 1}


class TestIsNotFound:
    """Test not-found detection."""

    def test_variants(self):
        """Test every not-found flavour is recognized."""
        assert is_not_found(ResourceNotFoundError("x"))
        assert is_not_found(ServerError("ResourceNotFound", "x", 404))
        assert is_not_found(GenericHttpError("x", 404))
        assert not is_not_found(GenericHttpError("x", 410))
        assert not is_not_found(ValueError("x"))
