"""Tests for the change feed websocket client."""

import json
from unittest.mock import MagicMock, Mock, patch

import pytest
from websockets.exceptions import ConnectionClosedError, InvalidURI

from conftest import INSTANCE_ID
from tritoncloud.client.changefeed import ChangeFeed, subscription_message
from tritoncloud.exceptions import InvalidContentError, TransportError


@pytest.fixture
def cloudapi():
    api = Mock()
    api.changefeed_url.return_value = "wss://cloudapi.test.example.com/alice/changefeed"
    api.signer.sign_headers.return_value = {"date": "d", "authorization": "sig"}
    api.wire.accept_version = "~8||~7"
    api.wire.user_agent = "tritoncloud/test"
    api.wire.reject_unauthorized = True
    return api


class TestSubscription:
    """Test the subscription message."""

    def test_all_instances(self):
        """Test an unrestricted subscription lists no vms."""
        message = subscription_message()
        assert message["resource"] == "vm"
        assert "state" in message["subResources"]
        assert "vms" not in message

    def test_selected_instances(self):
        """Test selected instances are listed."""
        assert subscription_message([INSTANCE_ID])["vms"] == [INSTANCE_ID]


class TestChangeFeed:
    """Test connecting and reading."""

    def test_open_sends_signed_handshake_and_subscription(self, cloudapi):
        """Test the handshake carries signature headers and the subscription is sent."""
        conn = MagicMock()
        with patch("tritoncloud.client.websocket.connect", return_value=conn) as connect:
            ChangeFeed(cloudapi, [INSTANCE_ID]).open()

        kwargs = connect.call_args.kwargs
        assert kwargs["additional_headers"]["authorization"] == "sig"
        assert kwargs["additional_headers"]["Accept-Version"] == "~8||~7"
        assert kwargs["user_agent_header"] == "tritoncloud/test"
        sent = json.loads(conn.send.call_args.args[0])
        assert sent["vms"] == [INSTANCE_ID]

    def test_insecure_context(self, cloudapi):
        """Test an insecure profile disables certificate checks on the socket."""
        cloudapi.wire.reject_unauthorized = False
        with patch("tritoncloud.client.websocket.connect", return_value=MagicMock()) as connect:
            ChangeFeed(cloudapi).open()
        context = connect.call_args.kwargs["ssl"]
        assert context.check_hostname is False

    def test_iterates_decoded_messages(self, cloudapi):
        """Test messages are yielded as decoded JSON."""
        conn = MagicMock()
        conn.__iter__.return_value = iter(['{"changedResourceId": "a"}', '{"changedResourceId": "b"}'])
        with patch("tritoncloud.client.websocket.connect", return_value=conn):
            with ChangeFeed(cloudapi) as feed:
                ids = [m["changedResourceId"] for m in feed]

        assert ids == ["a", "b"]
        conn.close.assert_called_once()

    def test_bad_message(self, cloudapi):
        """Test a non-JSON message is invalid content."""
        conn = MagicMock()
        conn.__iter__.return_value = iter(["nope"])
        with patch("tritoncloud.client.websocket.connect", return_value=conn):
            with pytest.raises(InvalidContentError):
                list(ChangeFeed(cloudapi))

    def test_abnormal_close(self, cloudapi):
        """Test an abnormal close is a transport error."""
        conn = MagicMock()
        conn.__iter__.side_effect = ConnectionClosedError(None, None)
        with patch("tritoncloud.client.websocket.connect", return_value=conn):
            with pytest.raises(TransportError, match="closed unexpectedly"):
                list(ChangeFeed(cloudapi))

    def test_connect_failure(self, cloudapi):
        """Test a failed handshake is a transport error."""
        with patch("tritoncloud.client.websocket.connect", side_effect=InvalidURI("x", "bad")):
            with pytest.raises(TransportError, match="could not connect"):
                ChangeFeed(cloudapi).open()
