"""JSON-over-HTTPS request engine with strict response checking."""

import base64
import hashlib
import json
import platform
import time
import zlib
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

import requests
from urllib3.exceptions import ProtocolError

from tritoncloud import __version__
from tritoncloud.constants import DEFAULT_ACCEPT_VERSION
from tritoncloud.exceptions import (
    BadDigestError,
    GenericHttpError,
    HttpError,
    IncompleteContentError,
    InvalidContentError,
    SelfSignedCertError,
    ServerError,
    TransportError,
)
from tritoncloud.logger import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024

_SELF_SIGNED_MARKERS = ("self signed certificate", "self-signed certificate")


def default_user_agent() -> str:
    return (
        f"tritoncloud/{__version__} "
        f"({platform.machine()}-{platform.system().lower()}; "
        f"python/{platform.python_version()})"
    )


@dataclass
class WireResponse:
    """One fully buffered response. ``body`` is the decoded JSON value or None."""

    status: int
    headers: Mapping[str, str]
    body: Any = None
    raw_body: bytes = b""
    response: Optional[requests.Response] = field(default=None, repr=False)


def _iter_raw(raw) -> Iterator[bytes]:
    # Undecoded bytes: gzip is handled here so the checks see the decoded body.
    if hasattr(raw, "stream"):
        yield from raw.stream(CHUNK_SIZE, decode_content=False)
        return
    while True:
        chunk = raw.read(CHUNK_SIZE)
        if not chunk:
            break
        yield chunk


def _error_fields(body: Any) -> tuple[Optional[str], Optional[str]]:
    if not isinstance(body, dict):
        return None, None
    envelope = body.get("error") if isinstance(body.get("error"), dict) else body
    code = envelope.get("code")
    message = envelope.get("message")
    return (code if isinstance(code, str) and code else None), (
        message if isinstance(message, str) else None
    )


class WireClient:
    """
    Perform single HTTPS exchanges with JSON semantics.

    Args:
        url: Base URL, e.g. ``https://us-east-1.api.example.com``
        accept_version: Accept-Version header value
        user_agent: User-Agent header value
        reject_unauthorized: Verify the server's TLS certificate
        pool: Reuse connections; when False every request uses a fresh
            connection and sends ``Connection: close``
        timeout: Socket timeout in seconds
        session: Session to use instead of a new one
    """

    def __init__(
        self,
        url: str,
        accept_version: Optional[str] = None,
        user_agent: Optional[str] = None,
        reject_unauthorized: bool = True,
        pool: bool = True,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.accept_version = accept_version or DEFAULT_ACCEPT_VERSION
        self.user_agent = user_agent or default_user_agent()
        self.reject_unauthorized = reject_unauthorized
        self.pool = pool
        self.timeout = timeout
        self._session = session if session is not None else requests.Session()

    def close(self) -> None:
        self._session.close()

    def _headers(self, extra: Optional[Mapping[str, str]], has_body: bool) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip",
            "Accept-Version": self.accept_version,
            "User-Agent": self.user_agent,
        }
        if has_body:
            headers["Content-Type"] = "application/json"
        if not self.pool:
            headers["Connection"] = "close"
        if extra:
            headers.update(extra)
        return headers

    def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> WireResponse:
        """
        Issue one request and decode the response.

        Args:
            method: HTTP method
            path: Path (and query string) below the base URL
            body: JSON-serializable request body, or None for no body
            headers: Extra request headers, e.g. the signature headers

        Returns:
            The decoded response for any status below 400

        Raises:
            TransportError: No response was received
            SelfSignedCertError: TLS verification failed on a self-signed certificate
            IncompleteContentError: Body length differs from Content-Length
            BadDigestError: Body digest differs from Content-MD5
            InvalidContentError: Body is not valid JSON
            ServerError: Status >= 400 with a typed error code
            GenericHttpError: Status >= 400 without one
        """
        method = method.upper()
        data = json.dumps(body).encode("utf-8") if body is not None else None
        url = self.url + path
        session = self._session if self.pool else requests.Session()
        started = time.monotonic()

        try:
            try:
                resp = session.request(
                    method,
                    url,
                    data=data,
                    headers=self._headers(headers, data is not None),
                    stream=True,
                    verify=self.reject_unauthorized,
                    timeout=self.timeout,
                    allow_redirects=False,
                )
            except requests.exceptions.SSLError as e:
                if self.reject_unauthorized and any(m in str(e).lower() for m in _SELF_SIGNED_MARKERS):
                    raise SelfSignedCertError(self.url, cause=e) from e
                raise TransportError(f"{method} {url} failed: {e}", cause=e) from e
            except requests.exceptions.RequestException as e:
                raise TransportError(f"{method} {url} failed: {e}", cause=e) from e

            try:
                result = self._read_response(method, resp)
            finally:
                resp.close()
        finally:
            if not self.pool:
                session.close()

        logger.debug(
            "cloudapi request",
            method=method,
            path=path,
            status=result.status,
            elapsed_ms=round((time.monotonic() - started) * 1000),
        )
        return result

    def _read_response(self, method: str, resp: requests.Response) -> WireResponse:
        status = resp.status_code
        headers = resp.headers
        gzipped = headers.get("content-encoding", "").lower() == "gzip"
        content_md5 = headers.get("content-md5")
        check_md5 = bool(content_md5) and method != "HEAD" and status != 206

        if hasattr(resp.raw, "enforce_content_length"):
            resp.raw.enforce_content_length = False

        decoder = zlib.decompressobj(16 + zlib.MAX_WBITS) if gzipped else None
        md5 = hashlib.md5() if check_md5 else None
        chunks = []
        try:
            for chunk in _iter_raw(resp.raw):
                if decoder is not None:
                    chunk = decoder.decompress(chunk)
                chunks.append(chunk)
            if decoder is not None:
                chunks.append(decoder.flush())
        except zlib.error as e:
            raise InvalidContentError(
                f"could not gunzip response body: {e}", cause=e, status_code=status, headers=headers
            ) from e
        except (ProtocolError, OSError) as e:
            raise TransportError(f"error reading response body: {e}", cause=e) from e

        raw_body = b"".join(chunks)
        if md5 is not None:
            md5.update(raw_body)

        content_length = headers.get("content-length")
        if method != "HEAD" and content_length is not None and content_length.isdigit():
            if len(raw_body) != int(content_length):
                raise IncompleteContentError(
                    f"incomplete content: Content-Length:{content_length} but got "
                    f"{len(raw_body)} bytes",
                    status_code=status,
                    headers=headers,
                    original_body=raw_body,
                )

        if md5 is not None:
            digest = base64.b64encode(md5.digest()).decode("ascii")
            if digest != content_md5:
                raise BadDigestError(
                    f"Content-MD5 expected to be {content_md5}, but was {digest}",
                    status_code=status,
                    headers=headers,
                    original_body=raw_body,
                )

        text = raw_body.decode("utf-8", errors="replace")
        body = None
        if text.strip():
            try:
                body = json.loads(text)
            except ValueError as e:
                if status >= 400:
                    raise self._http_error(status, headers, None, raw_body) from e
                raise InvalidContentError(
                    f"invalid JSON in response: {e}",
                    cause=e,
                    status_code=status,
                    headers=headers,
                    original_body=raw_body,
                ) from e

        if status >= 400:
            raise self._http_error(status, headers, body, raw_body)

        return WireResponse(status=status, headers=headers, body=body, raw_body=raw_body, response=resp)

    def _http_error(self, status: int, headers, body: Any, raw_body: bytes) -> HttpError:
        code, message = _error_fields(body)
        if code:
            return ServerError(
                code,
                message or code,
                status,
                body=body,
                original_body=raw_body,
                headers=dict(headers),
            )
        text = raw_body.decode("utf-8", errors="replace").strip()
        return GenericHttpError(
            message or text or f"HTTP {status}",
            status,
            body=body,
            original_body=raw_body,
            headers=dict(headers),
        )
