"""Signed websocket connections to CloudAPI."""

import ssl
from typing import Optional

from websockets.exceptions import InvalidHandshake, InvalidURI
from websockets.sync.client import ClientConnection, connect

from tritoncloud.client.cloudapi import CloudApi
from tritoncloud.exceptions import TransportError
from tritoncloud.logger import get_logger

logger = get_logger(__name__)


def ssl_context(url: str, reject_unauthorized: bool = True) -> Optional[ssl.SSLContext]:
    if not url.startswith("wss://"):
        return None
    context = ssl.create_default_context()
    if not reject_unauthorized:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def open_websocket(cloudapi: CloudApi, url: str, what: str = "websocket") -> ClientConnection:
    """
    Open a websocket whose handshake carries the request signature.

    Raises:
        TransportError: If the connection or handshake fails
    """
    headers = cloudapi.signer.sign_headers()
    headers["Accept-Version"] = cloudapi.wire.accept_version
    logger.debug("opening websocket", url=url, what=what)
    try:
        return connect(
            url,
            additional_headers=headers,
            user_agent_header=cloudapi.wire.user_agent,
            ssl=ssl_context(url, cloudapi.wire.reject_unauthorized),
        )
    except (OSError, InvalidHandshake, InvalidURI) as e:
        raise TransportError(f"could not connect to {what} {url}: {e}", cause=e) from e
