"""Tests for the JSON-over-HTTPS request engine."""

import base64
import gzip
import hashlib
import json
from unittest.mock import MagicMock

import pytest
import requests

from conftest import TEST_URL, make_response
from tritoncloud.client.wire import WireClient
from tritoncloud.exceptions import (
    BadDigestError,
    GenericHttpError,
    IncompleteContentError,
    InvalidContentError,
    SelfSignedCertError,
    ServerError,
    TransportError,
)


def _client(session, **kwargs):
    return WireClient(TEST_URL, session=session, **kwargs)


class TestRequest:
    """Test request construction."""

    def test_sends_json_body_and_headers(self, mock_session):
        """Test the body is JSON encoded and standard headers are set."""
        _client(mock_session).request("post", "/alice/machines", body={"name": "web0"}, headers={"x-a": "1"})

        args, kwargs = mock_session.request.call_args
        assert args == ("POST", f"{TEST_URL}/alice/machines")
        assert json.loads(kwargs["data"]) == {"name": "web0"}
        headers = kwargs["headers"]
        assert headers["Content-Type"] == "application/json"
        assert headers["Accept-Version"] == "~8||~7"
        assert headers["Accept-Encoding"] == "gzip"
        assert headers["x-a"] == "1"
        assert kwargs["allow_redirects"] is False
        assert kwargs["stream"] is True

    def test_no_body_no_content_type(self, mock_session):
        """Test GET requests carry no body or Content-Type."""
        _client(mock_session).request("GET", "/alice")
        kwargs = mock_session.request.call_args.kwargs
        assert kwargs["data"] is None
        assert "Content-Type" not in kwargs["headers"]

    def test_insecure_disables_verification(self, mock_session):
        """Test reject_unauthorized=False turns off TLS verification."""
        _client(mock_session, reject_unauthorized=False).request("GET", "/alice")
        assert mock_session.request.call_args.kwargs["verify"] is False

    def test_unpooled_requests_close_connection(self, mock_session):
        """Test pool=False asks the server to close the connection."""
        client = _client(mock_session, pool=False)
        fresh = MagicMock(spec=requests.Session)
        fresh.request.return_value = make_response(200, {})
        with pytest.MonkeyPatch.context() as mp:
            mp.setattr(requests, "Session", lambda: fresh)
            client.request("GET", "/alice")

        assert fresh.request.call_args.kwargs["headers"]["Connection"] == "close"
        fresh.close.assert_called_once()
        mock_session.request.assert_not_called()

    def test_unpooled_session_closed_on_failure(self, mock_session):
        """Test pool=False closes the per-request session when the request fails."""
        client = _client(mock_session, pool=False)
        fresh = MagicMock(spec=requests.Session)
        fresh.request.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.MonkeyPatch.context() as mp:
            mp.setattr(requests, "Session", lambda: fresh)
            with pytest.raises(TransportError):
                client.request("GET", "/alice")

        fresh.close.assert_called_once()


class TestTransportErrors:
    """Test failures before a response arrives."""

    def test_connection_error(self, mock_session):
        """Test a connection failure becomes TransportError."""
        mock_session.request.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(TransportError, match="refused"):
            _client(mock_session).request("GET", "/alice")

    def test_self_signed_certificate(self, mock_session):
        """Test a self-signed certificate failure gets a dedicated error."""
        mock_session.request.side_effect = requests.exceptions.SSLError(
            "certificate verify failed: self signed certificate"
        )
        with pytest.raises(SelfSignedCertError, match="self-signed") as exc:
            _client(mock_session).request("GET", "/alice")
        assert exc.value.name == "SelfSignedCertError"

    def test_other_ssl_error(self, mock_session):
        """Test other TLS failures are plain TransportErrors."""
        mock_session.request.side_effect = requests.exceptions.SSLError("handshake failure")
        with pytest.raises(TransportError) as exc:
            _client(mock_session).request("GET", "/alice")
        assert not isinstance(exc.value, SelfSignedCertError)


class TestResponseChecks:
    """Test response body validation."""

    def test_json_body(self, mock_session):
        """Test a JSON body is decoded."""
        mock_session.request.return_value = make_response(200, {"id": "abc"})
        res = _client(mock_session).request("GET", "/alice")
        assert res.status == 200
        assert res.body == {"id": "abc"}

    def test_empty_body_is_none(self, mock_session):
        """Test an empty 204 body decodes to None."""
        mock_session.request.return_value = make_response(204, raw=b"")
        assert _client(mock_session).request("DELETE", "/alice/machines/x").body is None

    def test_whitespace_body_is_none(self, mock_session):
        """Test a whitespace-only body decodes to None."""
        mock_session.request.return_value = make_response(200, raw=b"  \n")
        assert _client(mock_session).request("GET", "/alice").body is None

    def test_gzip_body(self, mock_session):
        """Test gzip bodies are decoded and length checked after decoding."""
        payload = json.dumps([{"id": "a"}]).encode()
        mock_session.request.return_value = make_response(
            200,
            raw=gzip.compress(payload),
            headers={"content-encoding": "gzip", "content-length": str(len(payload))},
        )
        assert _client(mock_session).request("GET", "/alice/machines").body == [{"id": "a"}]

    def test_corrupt_gzip(self, mock_session):
        """Test a corrupt gzip stream is invalid content."""
        mock_session.request.return_value = make_response(
            200, raw=b"not gzip at all", headers={"content-encoding": "gzip"}
        )
        with pytest.raises(InvalidContentError):
            _client(mock_session).request("GET", "/alice")

    def test_short_body(self, mock_session):
        """Test a body shorter than Content-Length is incomplete."""
        mock_session.request.return_value = make_response(
            200, raw=b'{"a":', headers={"content-length": "100"}
        )
        with pytest.raises(IncompleteContentError) as exc:
            _client(mock_session).request("GET", "/alice")
        assert "Content-Length:100" in exc.value.message
        assert exc.value.original_body == b'{"a":'

    def test_head_skips_length_check(self, mock_session):
        """Test HEAD responses are not length checked."""
        mock_session.request.return_value = make_response(200, raw=b"", headers={"content-length": "42"})
        assert _client(mock_session).request("HEAD", "/alice").body is None

    def test_md5_match(self, mock_session):
        """Test a matching Content-MD5 passes."""
        raw = b'{"ok":true}'
        md5 = base64.b64encode(hashlib.md5(raw).digest()).decode()
        mock_session.request.return_value = make_response(200, raw=raw, headers={"content-md5": md5})
        assert _client(mock_session).request("GET", "/alice").body == {"ok": True}

    def test_md5_mismatch(self, mock_session):
        """Test a mismatched Content-MD5 is a bad digest."""
        mock_session.request.return_value = make_response(
            200, raw=b'{"ok":true}', headers={"content-md5": "AAAAAAAAAAAAAAAAAAAAAA=="}
        )
        with pytest.raises(BadDigestError, match="Content-MD5 expected"):
            _client(mock_session).request("GET", "/alice")

    def test_gzip_md5_of_decoded_body(self, mock_session):
        """Test Content-MD5 on a gzip response is checked against the decompressed bytes."""
        payload = b'{"ok":true}'
        md5 = base64.b64encode(hashlib.md5(payload).digest()).decode()
        mock_session.request.return_value = make_response(
            200,
            raw=gzip.compress(payload),
            headers={"content-encoding": "gzip", "content-length": str(len(payload)), "content-md5": md5},
        )
        assert _client(mock_session).request("GET", "/alice").body == {"ok": True}

    def test_gzip_md5_of_compressed_body(self, mock_session):
        """Test a Content-MD5 computed over the compressed bytes is a bad digest."""
        payload = b'{"ok":true}'
        compressed = gzip.compress(payload)
        md5 = base64.b64encode(hashlib.md5(compressed).digest()).decode()
        mock_session.request.return_value = make_response(
            200,
            raw=compressed,
            headers={"content-encoding": "gzip", "content-length": str(len(payload)), "content-md5": md5},
        )
        with pytest.raises(BadDigestError):
            _client(mock_session).request("GET", "/alice")

    def test_md5_skipped_for_partial_content(self, mock_session):
        """Test 206 responses skip the digest check."""
        mock_session.request.return_value = make_response(
            206, raw=b'{"ok":true}', headers={"content-md5": "AAAAAAAAAAAAAAAAAAAAAA=="}
        )
        assert _client(mock_session).request("GET", "/alice").status == 206

    def test_invalid_json(self, mock_session):
        """Test a non-JSON success body is invalid content."""
        mock_session.request.return_value = make_response(200, raw=b"<html>")
        with pytest.raises(InvalidContentError, match="invalid JSON"):
            _client(mock_session).request("GET", "/alice")

    def test_redirect_is_returned(self, mock_session):
        """Test 3xx responses are returned, not followed."""
        mock_session.request.return_value = make_response(302, raw=b"", headers={"location": "/alice/x"})
        res = _client(mock_session).request("POST", "/alice/machines/x/nics", body={})
        assert res.status == 302
        assert res.headers["location"] == "/alice/x"


class TestHttpErrors:
    """Test status >= 400 mapping."""

    def test_typed_server_error(self, mock_session):
        """Test a body with a code becomes a ServerError named after it."""
        mock_session.request.return_value = make_response(
            404, {"code": "ResourceNotFound", "message": "machine not found"}
        )
        with pytest.raises(ServerError) as exc:
            _client(mock_session).request("GET", "/alice/machines/x")

        err = exc.value
        assert err.name == "ResourceNotFoundError"
        assert err.status_code == 404
        assert err.message == "machine not found"
        assert err.body["code"] == "ResourceNotFound"

    def test_nested_error_envelope(self, mock_session):
        """Test codes nested under "error" are found."""
        mock_session.request.return_value = make_response(
            409, {"error": {"code": "InvalidArgument", "message": "bad"}}
        )
        with pytest.raises(ServerError) as exc:
            _client(mock_session).request("POST", "/alice/machines")
        assert exc.value.name == "InvalidArgumentError"

    def test_generic_error_named_from_status(self, mock_session):
        """Test a body without a code is named from the status phrase."""
        mock_session.request.return_value = make_response(503, raw=b"")
        with pytest.raises(GenericHttpError) as exc:
            _client(mock_session).request("GET", "/alice")
        assert exc.value.name == "ServiceUnavailableError"
        assert exc.value.message == "HTTP 503"

    def test_non_json_error_body(self, mock_session):
        """Test a non-JSON error body keeps its text as the message."""
        mock_session.request.return_value = make_response(502, raw=b"Bad Gateway from proxy")
        with pytest.raises(GenericHttpError) as exc:
            _client(mock_session).request("GET", "/alice")
        assert exc.value.message == "Bad Gateway from proxy"
        assert exc.value.original_body == b"Bad Gateway from proxy"
