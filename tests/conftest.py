"""Global test configuration and fixtures."""

import io
import json
import sys
from pathlib import Path
from typing import Any, Optional
from unittest.mock import MagicMock, Mock

import pytest
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from requests.structures import CaseInsensitiveDict

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tritoncloud.auth.keypair import PrivateKeyPair  # noqa: E402
from tritoncloud.config.profile import Profile  # noqa: E402
from tritoncloud.waiter import PollWaiter  # noqa: E402

TEST_URL = "https://cloudapi.test.example.com"
INSTANCE_ID = "5e42cd1e-34bb-402f-8796-bf5a2cae47db"
OTHER_INSTANCE_ID = "5e42cd1e-ffff-402f-8796-bf5a2cae47db"
IMAGE_ID = "2b683a82-a066-11e3-97ab-2faa44701c5a"
PACKAGE_ID = "7b17343c-94af-6266-e0e8-893a3b9993d0"
NETWORK_ID = "7ec7ba5c-c5f1-4a6e-91da-c1a6f0d1d7e8"


def make_response(
    status: int = 200,
    body: Any = None,
    raw: Optional[bytes] = None,
    headers: Optional[dict[str, str]] = None,
) -> requests.Response:
    """A requests.Response whose ``raw`` is a BytesIO holding the body."""
    if raw is None:
        raw = b"" if body is None else json.dumps(body).encode("utf-8")
    resp = requests.Response()
    resp.status_code = status
    resp.headers = CaseInsensitiveDict(headers or {})
    if "content-length" not in resp.headers:
        resp.headers["content-length"] = str(len(raw))
    resp.raw = io.BytesIO(raw)
    return resp


@pytest.fixture
def response_factory():
    """Factory for fake HTTP responses."""
    return make_response


@pytest.fixture
def mock_session():
    """A requests session double returning an empty 200 unless told otherwise."""
    session = MagicMock(spec=requests.Session)
    session.request.return_value = make_response(200, {})
    return session


@pytest.fixture
def profile():
    """A complete profile."""
    return Profile(name="test", url=TEST_URL, account="alice", keyId="SHA256:abc")


@pytest.fixture
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def ec_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def ed25519_key():
    return ed25519.Ed25519PrivateKey.generate()


def pem_bytes(key, passphrase: Optional[bytes] = None) -> bytes:
    encryption = (
        serialization.BestAvailableEncryption(passphrase) if passphrase else serialization.NoEncryption()
    )
    return key.private_bytes(serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, encryption)


@pytest.fixture
def rsa_key_pair(rsa_key):
    return PrivateKeyPair(pem_bytes(rsa_key), source="test-rsa")


@pytest.fixture
def fake_clock():
    """A monotonic clock advanced only by the fake sleep."""
    state = {"now": 0.0}

    def clock() -> float:
        return state["now"]

    def sleep(seconds: float) -> None:
        state["now"] += seconds

    clock.sleep = sleep
    clock.state = state
    return clock


@pytest.fixture
def waiter(fake_clock):
    """PollWaiter that never really sleeps."""
    return PollWaiter(interval=1.0, sleep=fake_clock.sleep, clock=fake_clock)


@pytest.fixture
def mock_cloudapi():
    """CloudApi double."""
    api = Mock()
    api.url = TEST_URL
    return api
