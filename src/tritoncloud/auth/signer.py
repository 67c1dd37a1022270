"""HTTP Signature authentication headers."""

import base64
from email.utils import formatdate
from typing import Optional

from tritoncloud.auth.keypair import KeyPair
from tritoncloud.exceptions import SigningError, TritonError


class RequestSigner:
    """Produces the ``date`` and ``authorization`` headers for one request."""

    def __init__(self, key_pair: KeyPair, account: str, user: Optional[str] = None) -> None:
        self.key_pair = key_pair
        self.account = account
        self.user = user

    @property
    def key_id(self) -> str:
        """``/<account>[/users/<user>]/keys/<md5 fingerprint>``"""
        principal = f"/{self.account}"
        if self.user:
            principal += f"/users/{self.user}"
        return f"{principal}/keys/{self.key_pair.fingerprint}"

    def sign_headers(self, date: Optional[str] = None) -> dict[str, str]:
        """
        Sign the request date.

        Args:
            date: RFC-1123 date to sign, defaults to now

        Returns:
            ``{"date": ..., "authorization": ...}``

        Raises:
            SigningError: If the key is locked or the signature could not be made
        """
        date = date or formatdate(usegmt=True)
        try:
            signature = self.key_pair.sign(f"date: {date}".encode("utf-8"))
        except SigningError:
            raise
        except (TritonError, ValueError, TypeError) as e:
            raise SigningError(f"could not sign request: {e}", cause=e) from e

        authorization = (
            f'Signature keyId="{self.key_id}",'
            f'algorithm="{self.key_pair.algorithm}",'
            'headers="date",'
            f'signature="{base64.b64encode(signature).decode("ascii")}"'
        )
        return {"date": date, "authorization": authorization}
