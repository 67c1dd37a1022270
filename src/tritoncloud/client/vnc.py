"""VNC console access for hardware virtual machines.

CloudAPI exposes a VM's VNC console as a binary websocket. ``serve_vnc``
bridges one local TCP client (a VNC viewer) to that websocket.
"""

import asyncio
from collections.abc import Callable
from typing import Any, Optional

from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.sync.client import ClientConnection

from tritoncloud.client.cloudapi import CloudApi
from tritoncloud.client.websocket import open_websocket
from tritoncloud.exceptions import TransportError
from tritoncloud.logger import get_logger

logger = get_logger(__name__)

_READ_SIZE = 65536


class VncConsole:
    """A websocket connection to one VM's VNC console."""

    def __init__(self, cloudapi: CloudApi, machine_id: str) -> None:
        self.cloudapi = cloudapi
        self.machine_id = machine_id
        self._conn: Optional[ClientConnection] = None

    def open(self) -> "VncConsole":
        if self._conn is None:
            url = self.cloudapi.machine_vnc_url(self.machine_id)
            self._conn = open_websocket(self.cloudapi, url, "VNC console")
        return self

    def _connection(self) -> ClientConnection:
        if self._conn is None:
            self.open()
        return self._conn

    def recv(self) -> Optional[bytes]:
        """Next chunk from the console, or ``None`` once it closed normally."""
        try:
            data = self._connection().recv()
        except ConnectionClosedOK:
            return None
        except ConnectionClosedError as e:
            raise TransportError(f"VNC console closed unexpectedly: {e}", cause=e) from e
        return data.encode("utf-8") if isinstance(data, str) else data

    def send(self, data: bytes) -> None:
        try:
            self._connection().send(data)
        except ConnectionClosedError as e:
            raise TransportError(f"VNC console closed unexpectedly: {e}", cause=e) from e

    def close(self) -> None:
        if self._conn is not None:
            logger.debug("closing VNC console", machine_id=self.machine_id)
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "VncConsole":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


async def _console_to_client(console: VncConsole, writer: asyncio.StreamWriter) -> None:
    while True:
        data = await asyncio.to_thread(console.recv)
        if data is None:
            return
        writer.write(data)
        await writer.drain()


async def _client_to_console(reader: asyncio.StreamReader, console: VncConsole) -> None:
    while True:
        data = await reader.read(_READ_SIZE)
        if not data:
            return
        await asyncio.to_thread(console.send, data)


async def serve_vnc(
    console: VncConsole,
    port: int = 0,
    on_listening: Optional[Callable[[int], None]] = None,
    host: str = "127.0.0.1",
) -> None:
    """
    Listen on ``host:port`` and relay the first client to the console.

    Returns when either side disconnects. Further clients are turned away
    while the first one is connected.

    Args:
        console: An opened console
        port: Local port, 0 picks a free one
        on_listening: Called with the bound port once the server listens
        host: Local address to bind

    Raises:
        TransportError: If the console connection fails mid-session
    """
    finished = asyncio.Event()
    errors: list[BaseException] = []
    busy = False

    async def relay(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        nonlocal busy
        if busy:
            writer.close()
            return
        busy = True
        logger.debug("VNC client connected", peer=writer.get_extra_info("peername"))
        tasks = [
            asyncio.create_task(_console_to_client(console, writer)),
            asyncio.create_task(_client_to_console(reader, console)),
        ]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            for task in done:
                if task.exception() is not None:
                    errors.append(task.exception())
        finally:
            writer.close()
            finished.set()

    server = await asyncio.start_server(relay, host, port)
    async with server:
        if on_listening is not None:
            on_listening(server.sockets[0].getsockname()[1])
        await finished.wait()
    # Unblocks a relay thread still waiting in recv().
    console.close()
    if errors:
        raise errors[0]
