"""SSH key pairs used to sign CloudAPI requests.

Two sources are supported: private key material (OpenSSH or PEM, possibly
passphrase protected) and keys held by a running ssh-agent.
"""

import base64
import hashlib
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import paramiko
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from tritoncloud.exceptions import KeyLockedError, SigningError
from tritoncloud.logger import get_logger

logger = get_logger(__name__)

_EC_HASHES = {
    "secp256r1": ("ecdsa-sha256", hashes.SHA256),
    "secp384r1": ("ecdsa-sha384", hashes.SHA384),
    "secp521r1": ("ecdsa-sha512", hashes.SHA512),
}

_SSH_KEY_ALGORITHMS = {
    "ssh-rsa": "rsa-sha256",
    "ecdsa-sha2-nistp256": "ecdsa-sha256",
    "ecdsa-sha2-nistp384": "ecdsa-sha384",
    "ecdsa-sha2-nistp521": "ecdsa-sha512",
    "ssh-ed25519": "ed25519-sha512",
}


def md5_fingerprint(blob: bytes) -> str:
    digest = hashlib.md5(blob).hexdigest()
    return ":".join(digest[i : i + 2] for i in range(0, len(digest), 2))


def sha256_fingerprint(blob: bytes) -> str:
    digest = base64.b64encode(hashlib.sha256(blob).digest()).decode("ascii")
    return "SHA256:" + digest.rstrip("=")


def fingerprint_matches(blob: bytes, key_id: str) -> bool:
    """Whether ``key_id`` (MD5 colon hex, ``MD5:...`` or ``SHA256:...``) names ``blob``."""
    if key_id.startswith("SHA256:"):
        return sha256_fingerprint(blob) == key_id
    if key_id.upper().startswith("MD5:"):
        key_id = key_id[4:]
    return md5_fingerprint(blob) == key_id.lower()


def _public_blob(public_key) -> bytes:
    openssh = public_key.public_bytes(
        serialization.Encoding.OpenSSH, serialization.PublicFormat.OpenSSH
    )
    return base64.b64decode(openssh.split()[1])


def _load_private_key(data: bytes, passphrase: Optional[bytes]):
    if b"BEGIN OPENSSH PRIVATE KEY" in data:
        return serialization.load_ssh_private_key(data, password=passphrase)
    return serialization.load_pem_private_key(data, password=passphrase)


class KeyPair(ABC):
    """A signing identity: a public key plus a way to sign with its private half."""

    algorithm: str = ""
    source: str = ""

    def __init__(self, public_blob: Optional[bytes]) -> None:
        self._public_blob = public_blob

    @property
    def public_blob(self) -> bytes:
        if self._public_blob is None:
            raise KeyLockedError(f"public key for {self.source} is not known until it is unlocked")
        return self._public_blob

    @property
    def fingerprint(self) -> str:
        """MD5 fingerprint, the form CloudAPI expects in the signature keyId."""
        return md5_fingerprint(self.public_blob)

    @property
    def sha256_fingerprint(self) -> str:
        return sha256_fingerprint(self.public_blob)

    def matches(self, key_id: str) -> bool:
        return fingerprint_matches(self.public_blob, key_id)

    @property
    def is_locked(self) -> bool:
        return False

    def unlock(self, passphrase: Union[str, bytes]) -> None:
        """Decrypt the private key. Keys that never load locked ignore this."""

    @abstractmethod
    def sign(self, data: bytes) -> bytes:
        """Sign ``data`` with the private key."""


class PrivateKeyPair(KeyPair):
    """Key pair backed by private key material in memory."""

    def __init__(
        self,
        data: bytes,
        source: str = "<private key>",
        public_blob: Optional[bytes] = None,
    ) -> None:
        super().__init__(public_blob)
        self.source = source
        self._data = data
        self._key = None
        try:
            self._set_key(_load_private_key(data, None))
        except TypeError:
            # Encrypted: stays locked until unlock() is given the passphrase.
            logger.debug("private key is encrypted", source=source)
        except (ValueError, UnsupportedAlgorithm) as e:
            raise SigningError(f"could not load private key {source}: {e}", cause=e) from e

    def _set_key(self, key) -> None:
        if isinstance(key, rsa.RSAPrivateKey):
            self.algorithm = "rsa-sha256"
        elif isinstance(key, ec.EllipticCurvePrivateKey):
            if key.curve.name not in _EC_HASHES:
                raise SigningError(f"unsupported ECDSA curve {key.curve.name} in {self.source}")
            self.algorithm = _EC_HASHES[key.curve.name][0]
        elif isinstance(key, ed25519.Ed25519PrivateKey):
            self.algorithm = "ed25519-sha512"
        else:
            raise SigningError(f"unsupported key type {type(key).__name__} in {self.source}")
        self._key = key
        self._public_blob = _public_blob(key.public_key())

    @property
    def is_locked(self) -> bool:
        return self._key is None

    def unlock(self, passphrase: Union[str, bytes]) -> None:
        """Decrypt the private key.

        Raises:
            SigningError: If the passphrase is wrong
        """
        if not self.is_locked:
            return
        if isinstance(passphrase, str):
            passphrase = passphrase.encode("utf-8")
        try:
            key = _load_private_key(self._data, passphrase)
        except (TypeError, ValueError) as e:
            raise SigningError(f"could not unlock {self.source}: bad passphrase", cause=e) from e
        self._set_key(key)
        logger.debug("unlocked private key", source=self.source)

    def sign(self, data: bytes) -> bytes:
        if self._key is None:
            raise KeyLockedError(f"key {self.source} is locked, a passphrase is required")
        key = self._key
        if isinstance(key, rsa.RSAPrivateKey):
            return key.sign(data, padding.PKCS1v15(), hashes.SHA256())
        if isinstance(key, ec.EllipticCurvePrivateKey):
            hash_cls = _EC_HASHES[key.curve.name][1]
            return key.sign(data, ec.ECDSA(hash_cls()))
        return key.sign(data)


class AgentKeyPair(KeyPair):
    """Key pair whose private half lives in an ssh-agent."""

    def __init__(self, agent_key: paramiko.AgentKey) -> None:
        super().__init__(agent_key.asbytes())
        self._agent_key = agent_key
        key_type = agent_key.get_name()
        if key_type not in _SSH_KEY_ALGORITHMS:
            raise SigningError(f"unsupported ssh-agent key type {key_type}")
        self.algorithm = _SSH_KEY_ALGORITHMS[key_type]
        self.source = f"ssh-agent key {self.fingerprint}"

    def sign(self, data: bytes) -> bytes:
        rsa_key = self.algorithm == "rsa-sha256"
        try:
            blob = self._agent_key.sign_ssh_data(
                data, algorithm="rsa-sha2-256" if rsa_key else None
            )
        except paramiko.SSHException as e:
            raise SigningError(f"ssh-agent could not sign with {self.source}: {e}", cause=e) from e
        if not blob:
            raise SigningError(f"ssh-agent returned no signature for {self.source}")

        msg = paramiko.Message(blob)
        msg.get_text()
        signature = msg.get_binary()
        if self.algorithm.startswith("ecdsa-"):
            point = paramiko.Message(signature)
            return encode_dss_signature(point.get_mpint(), point.get_mpint())
        return signature


def load_key_pair(path: Union[str, Path]) -> PrivateKeyPair:
    """Load a private key file, using ``<path>.pub`` for the fingerprint if present."""
    path = Path(path).expanduser()
    try:
        data = path.read_bytes()
    except OSError as e:
        raise SigningError(f"could not read private key {path}: {e}", cause=e) from e

    public_blob = None
    pub_path = path.with_name(path.name + ".pub")
    if pub_path.exists():
        public_blob = _read_public_blob(pub_path)
    return PrivateKeyPair(data, source=str(path), public_blob=public_blob)


def _read_public_blob(path: Path) -> Optional[bytes]:
    try:
        public_key = serialization.load_ssh_public_key(path.read_bytes())
    except (OSError, ValueError, UnsupportedAlgorithm):
        logger.debug("skipping unreadable public key", path=str(path))
        return None
    return _public_blob(public_key)


def _agent_keys() -> list:
    try:
        agent = paramiko.Agent()
    except paramiko.SSHException as e:
        logger.debug("ssh-agent unavailable", error=str(e))
        return []
    try:
        return list(agent.get_keys())
    finally:
        agent.close()


def find_key_pair(
    key_id: str,
    priv_key: Optional[str] = None,
    ssh_dir: Optional[Path] = None,
    use_agent: bool = True,
) -> KeyPair:
    """
    Locate the key pair for a profile.

    Tries, in order: explicit private key material, the ssh-agent, and private
    keys in ``~/.ssh`` whose ``.pub`` companion matches ``key_id``.

    Args:
        key_id: MD5 or SHA256 fingerprint of the key
        priv_key: Private key material from the profile
        ssh_dir: Directory to search, defaults to ``~/.ssh``
        use_agent: Whether to consult the ssh-agent

    Returns:
        The matching key pair (possibly locked)

    Raises:
        SigningError: If no key matches
    """
    if priv_key:
        return PrivateKeyPair(priv_key.encode("utf-8"), source="profile privKey")

    if use_agent:
        for agent_key in _agent_keys():
            if fingerprint_matches(agent_key.asbytes(), key_id):
                logger.debug("using ssh-agent key", key_id=key_id)
                return AgentKeyPair(agent_key)

    ssh_dir = ssh_dir or Path.home() / ".ssh"
    if ssh_dir.is_dir():
        for pub_path in sorted(ssh_dir.glob("*.pub")):
            blob = _read_public_blob(pub_path)
            if blob is None or not fingerprint_matches(blob, key_id):
                continue
            priv_path = pub_path.with_suffix("")
            if priv_path.exists():
                logger.debug("using key file", path=str(priv_path))
                return load_key_pair(priv_path)

    raise SigningError(f'no SSH key found matching "{key_id}"')
