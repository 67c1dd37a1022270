"""HTTP and websocket clients for CloudAPI."""

from tritoncloud.client.cloudapi import CloudApi
from tritoncloud.client.wire import WireClient, WireResponse

__all__ = ["CloudApi", "WireClient", "WireResponse"]
