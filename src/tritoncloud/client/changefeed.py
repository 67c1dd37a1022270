"""Websocket client for the CloudAPI change feed."""

import json
from collections.abc import Iterator
from typing import Any, Optional

from websockets.exceptions import ConnectionClosedError
from websockets.sync.client import ClientConnection

from tritoncloud.client.cloudapi import CloudApi
from tritoncloud.client.websocket import open_websocket
from tritoncloud.constants import CHANGEFEED_SUB_RESOURCES
from tritoncloud.exceptions import InvalidContentError, TransportError
from tritoncloud.logger import get_logger

logger = get_logger(__name__)


def subscription_message(instances: Optional[list[str]] = None) -> dict[str, Any]:
    message: dict[str, Any] = {
        "resource": "vm",
        "subResources": list(CHANGEFEED_SUB_RESOURCES),
    }
    if instances:
        message["vms"] = list(instances)
    return message


class ChangeFeed:
    """
    A subscription to VM changes.

    Iterate to receive decoded change messages. Use as a context manager, or
    call ``close()``, to shut the websocket down cleanly.
    """

    def __init__(self, cloudapi: CloudApi, instances: Optional[list[str]] = None) -> None:
        self.cloudapi = cloudapi
        self.instances = list(instances or [])
        self._conn: Optional[ClientConnection] = None

    def open(self) -> "ChangeFeed":
        url = self.cloudapi.changefeed_url()
        self._conn = open_websocket(self.cloudapi, url, "change feed")

        subscription = subscription_message(self.instances)
        logger.debug("change feed subscribe", url=url, subscription=subscription)
        self._conn.send(json.dumps(subscription))
        return self

    def __iter__(self) -> Iterator[dict[str, Any]]:
        if self._conn is None:
            self.open()
        try:
            for message in self._conn:
                try:
                    yield json.loads(message)
                except ValueError as e:
                    raise InvalidContentError(f"invalid change feed message: {e}", cause=e) from e
        except ConnectionClosedError as e:
            raise TransportError(f"change feed closed unexpectedly: {e}", cause=e) from e

    def close(self) -> None:
        if self._conn is not None:
            logger.debug("closing change feed")
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "ChangeFeed":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
