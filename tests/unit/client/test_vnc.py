"""Tests for the VNC console relay."""

import asyncio
import queue
from unittest.mock import MagicMock, Mock, patch

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from conftest import INSTANCE_ID
from tritoncloud.client.vnc import VncConsole, serve_vnc
from tritoncloud.exceptions import TransportError


@pytest.fixture
def cloudapi():
    api = Mock()
    api.machine_vnc_url.return_value = f"wss://cloudapi.test.example.com/alice/machines/{INSTANCE_ID}/vnc"
    api.signer.sign_headers.return_value = {"date": "d", "authorization": "sig"}
    api.wire.accept_version = "~8||~7"
    api.wire.user_agent = "tritoncloud/test"
    api.wire.reject_unauthorized = True
    return api


class FakeConsole:
    """Console double fed from a queue; ``None`` ends the stream."""

    def __init__(self, chunks):
        self.incoming = queue.Queue()
        for chunk in chunks:
            self.incoming.put(chunk)
        self.sent = []
        self.closed = False

    def recv(self):
        item = self.incoming.get(timeout=5)
        if isinstance(item, Exception):
            raise item
        return item

    def send(self, data):
        self.sent.append(data)

    def close(self):
        self.closed = True
        self.incoming.put(None)


class TestVncConsole:
    """Test the console websocket wrapper."""

    def test_open_signs_handshake(self, cloudapi):
        """Test the console handshake carries the signature headers."""
        with patch("tritoncloud.client.websocket.connect", return_value=MagicMock()) as connect:
            VncConsole(cloudapi, INSTANCE_ID).open()

        assert connect.call_args.args[0].endswith(f"/machines/{INSTANCE_ID}/vnc")
        assert connect.call_args.kwargs["additional_headers"]["authorization"] == "sig"

    def test_open_is_idempotent(self, cloudapi):
        """Test entering an already open console does not reconnect."""
        with patch("tritoncloud.client.websocket.connect", return_value=MagicMock()) as connect:
            console = VncConsole(cloudapi, INSTANCE_ID).open()
            with console:
                pass
        assert connect.call_count == 1

    def test_recv_text_as_bytes(self, cloudapi):
        """Test text frames are returned as bytes."""
        conn = MagicMock()
        conn.recv.return_value = "RFB 003.008\n"
        with patch("tritoncloud.client.websocket.connect", return_value=conn):
            assert VncConsole(cloudapi, INSTANCE_ID).recv() == b"RFB 003.008\n"

    def test_recv_normal_close(self, cloudapi):
        """Test a normal close ends the stream."""
        conn = MagicMock()
        conn.recv.side_effect = ConnectionClosedOK(None, None)
        with patch("tritoncloud.client.websocket.connect", return_value=conn):
            assert VncConsole(cloudapi, INSTANCE_ID).recv() is None

    def test_recv_abnormal_close(self, cloudapi):
        """Test an abnormal close is a transport error."""
        conn = MagicMock()
        conn.recv.side_effect = ConnectionClosedError(None, None)
        with patch("tritoncloud.client.websocket.connect", return_value=conn):
            with pytest.raises(TransportError, match="closed unexpectedly"):
                VncConsole(cloudapi, INSTANCE_ID).recv()


class TestServeVnc:
    """Test relaying a local client to the console."""

    async def test_relays_until_client_disconnects(self):
        """Test bytes flow both ways and the server stops when the client leaves."""
        console = FakeConsole([b"RFB 003.008\n"])
        ready = asyncio.get_running_loop().create_future()
        server = asyncio.create_task(serve_vnc(console, on_listening=ready.set_result))
        port = await asyncio.wait_for(ready, 5)

        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        assert await reader.readexactly(12) == b"RFB 003.008\n"
        writer.write(b"RFB 003.008\n")
        await writer.drain()
        writer.close()
        await writer.wait_closed()

        await asyncio.wait_for(server, 5)
        assert b"".join(console.sent) == b"RFB 003.008\n"
        assert console.closed

    async def test_console_failure_raised(self):
        """Test a console error ends the session and is raised."""
        console = FakeConsole([TransportError("VNC console closed unexpectedly")])
        ready = asyncio.get_running_loop().create_future()
        server = asyncio.create_task(serve_vnc(console, on_listening=ready.set_result))
        port = await asyncio.wait_for(ready, 5)

        _, writer = await asyncio.open_connection("127.0.0.1", port)
        with pytest.raises(TransportError):
            await asyncio.wait_for(server, 5)
        writer.close()
