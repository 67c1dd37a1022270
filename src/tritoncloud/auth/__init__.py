"""Request authentication."""

from tritoncloud.auth.keypair import AgentKeyPair, KeyPair, PrivateKeyPair, find_key_pair
from tritoncloud.auth.signer import RequestSigner

__all__ = ["AgentKeyPair", "KeyPair", "PrivateKeyPair", "RequestSigner", "find_key_pair"]
