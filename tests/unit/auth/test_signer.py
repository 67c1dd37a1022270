"""Tests for HTTP Signature header generation."""

import base64
import re
from unittest.mock import Mock

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding

from conftest import pem_bytes
from tritoncloud.auth.keypair import PrivateKeyPair
from tritoncloud.auth.signer import RequestSigner
from tritoncloud.exceptions import KeyLockedError, SigningError

DATE = "Tue, 20 Oct 2026 10:00:00 GMT"
AUTH_RE = re.compile(
    r'^Signature keyId="(?P<key_id>[^"]+)",algorithm="(?P<alg>[^"]+)",'
    r'headers="date",signature="(?P<sig>[^"]+)"$'
)


class TestKeyId:
    """Test the keyId principal path."""

    def test_account_key_id(self, rsa_key_pair):
        """Test keyId for an account principal."""
        signer = RequestSigner(rsa_key_pair, "alice")
        assert signer.key_id == f"/alice/keys/{rsa_key_pair.fingerprint}"

    def test_sub_user_key_id(self, rsa_key_pair):
        """Test keyId for an RBAC sub-user."""
        signer = RequestSigner(rsa_key_pair, "alice", user="bob")
        assert signer.key_id == f"/alice/users/bob/keys/{rsa_key_pair.fingerprint}"

    def test_fingerprint_is_md5_colon_hex(self, rsa_key_pair):
        """Test the keyId fingerprint is the MD5 form."""
        assert re.fullmatch(r"([0-9a-f]{2}:){15}[0-9a-f]{2}", rsa_key_pair.fingerprint)


class TestSignHeaders:
    """Test the date and authorization headers."""

    def test_rsa_signature_verifies(self, rsa_key, rsa_key_pair):
        """Test the RSA signature verifies over 'date: <date>'."""
        headers = RequestSigner(rsa_key_pair, "alice").sign_headers(DATE)

        assert headers["date"] == DATE
        match = AUTH_RE.match(headers["authorization"])
        assert match is not None
        assert match.group("alg") == "rsa-sha256"
        signature = base64.b64decode(match.group("sig"))
        rsa_key.public_key().verify(
            signature, f"date: {DATE}".encode(), padding.PKCS1v15(), hashes.SHA256()
        )

    def test_ecdsa_signature_verifies(self, ec_key):
        """Test the ECDSA P-256 signature is DER and verifies with SHA-256."""
        key_pair = PrivateKeyPair(pem_bytes(ec_key), source="test-ec")
        headers = RequestSigner(key_pair, "alice").sign_headers(DATE)

        match = AUTH_RE.match(headers["authorization"])
        assert match.group("alg") == "ecdsa-sha256"
        signature = base64.b64decode(match.group("sig"))
        ec_key.public_key().verify(signature, f"date: {DATE}".encode(), ec.ECDSA(hashes.SHA256()))

    def test_ed25519_signature_verifies(self, ed25519_key):
        """Test the Ed25519 signature verifies."""
        key_pair = PrivateKeyPair(pem_bytes(ed25519_key), source="test-ed25519")
        headers = RequestSigner(key_pair, "alice").sign_headers(DATE)

        match = AUTH_RE.match(headers["authorization"])
        assert match.group("alg") == "ed25519-sha512"
        ed25519_key.public_key().verify(base64.b64decode(match.group("sig")), f"date: {DATE}".encode())

    def test_default_date_is_rfc1123_gmt(self, rsa_key_pair):
        """Test the generated date header ends in GMT."""
        headers = RequestSigner(rsa_key_pair, "alice").sign_headers()
        assert headers["date"].endswith(" GMT")

    def test_locked_key_raises(self, rsa_key):
        """Test signing with a locked key raises KeyLockedError."""
        key_pair = PrivateKeyPair(pem_bytes(rsa_key, b"secret"), source="locked")
        signer = RequestSigner(key_pair, "alice")

        with pytest.raises(KeyLockedError):
            signer.sign_headers(DATE)

    def test_unexpected_failure_is_signing_error(self, rsa_key_pair):
        """Test any other signing failure is wrapped as SigningError."""
        signer = RequestSigner(rsa_key_pair, "alice")
        rsa_key_pair.sign = Mock(side_effect=ValueError("boom"))

        with pytest.raises(SigningError, match="boom"):
            signer.sign_headers(DATE)
