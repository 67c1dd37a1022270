"""Error taxonomy for the CloudAPI client and CLI."""

from http import HTTPStatus
from typing import Any, Optional


class TritonError(Exception):
    """Base class for every error raised by tritoncloud.

    Attributes:
        message: Human readable message
        code: Taxonomy name without the ``Error`` suffix
        exit_status: Process exit status the CLI uses for this error
        cause: Underlying exception, if any
        details: Extra context for logging and JSON output
    """

    code = "Triton"
    exit_status = 1

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.details = details or {}
        if cause is not None:
            self.__cause__ = cause

    @property
    def name(self) -> str:
        return f"{self.code}Error"

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        data: dict[str, Any] = {"error": self.name, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


class InternalError(TritonError):
    code = "Internal"


class ConfigError(TritonError):
    code = "Config"


class UsageError(TritonError):
    code = "Usage"
    exit_status = 2


class SigningError(TritonError):
    """Producing the authentication headers failed."""

    code = "Signing"


class KeyLockedError(SigningError):
    code = "KeyLocked"


class TransportError(TritonError):
    """The HTTPS exchange never completed."""

    code = "Transport"


class SelfSignedCertError(TransportError):
    code = "SelfSignedCert"

    def __init__(self, url: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(
            f"could not access CloudAPI {url} because it uses a self-signed TLS "
            "certificate and your current profile is not configured for "
            "insecure access",
            cause=cause,
            details={"url": url},
        )
        self.url = url


class ResponseContentError(TritonError):
    """Base for framing and decoding failures of a received response."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        self.status_code = kwargs.pop("status_code", None)
        self.headers = kwargs.pop("headers", None) or {}
        self.original_body = kwargs.pop("original_body", None)
        super().__init__(message, **kwargs)


class IncompleteContentError(ResponseContentError):
    code = "IncompleteContent"


class BadDigestError(ResponseContentError):
    code = "BadDigest"


class InvalidContentError(ResponseContentError):
    code = "InvalidContent"


class HttpError(TritonError):
    """Any response with a status of 400 or above."""

    code = "Http"

    def __init__(
        self,
        message: str,
        status_code: int,
        body: Any = None,
        original_body: Optional[bytes] = None,
        headers: Optional[dict[str, str]] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.body = body
        self.original_body = original_body
        self.headers = headers or {}

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["statusCode"] = self.status_code
        return data


class ServerError(HttpError):
    """A status >= 400 whose body carried a typed ``code``."""

    def __init__(self, rest_code: str, message: str, status_code: int, **kwargs: Any) -> None:
        super().__init__(message, status_code, **kwargs)
        self.rest_code = rest_code

    @property
    def name(self) -> str:
        if self.rest_code.endswith("Error"):
            return self.rest_code
        return f"{self.rest_code}Error"


class GenericHttpError(HttpError):
    """A status >= 400 without a typed ``code`` in the body."""

    @property
    def name(self) -> str:
        try:
            phrase = HTTPStatus(self.status_code).phrase
        except ValueError:
            return f"Http{self.status_code}Error"
        return "".join(word.capitalize() for word in phrase.replace("-", " ").split()) + "Error"


class ResourceNotFoundError(TritonError):
    code = "ResourceNotFound"
    exit_status = 3


class AmbiguousIdentifierError(TritonError):
    code = "AmbiguousIdentifier"


class InstanceDeletedError(TritonError):
    """An instance GET answered 410 Gone."""

    code = "InstanceDeleted"

    def __init__(self, message: str, instance: Any = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.instance = instance


class WaitTimeoutError(TritonError):
    code = "Timeout"

    def __init__(self, message: str, elapsed: float = 0.0, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.elapsed = elapsed


class AlreadyExistsError(TritonError):
    code = "AlreadyExists"


class MultiError(TritonError):
    """Aggregates the failures of parallel sub-operations."""

    code = "Multi"

    def __init__(self, errors: list[BaseException]) -> None:
        self.errors = list(errors)
        lines = [f"multiple ({len(self.errors)}) errors"]
        for err in self.errors:
            lines.append(f"    {_describe(err)}")
        super().__init__("\n".join(lines))

    @property
    def exit_status(self) -> int:  # type: ignore[override]
        statuses = {getattr(err, "exit_status", 1) for err in self.errors}
        return statuses.pop() if len(statuses) == 1 else 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.name,
            "message": self.message,
            "errors": [
                err.to_dict() if isinstance(err, TritonError) else {"message": str(err)}
                for err in self.errors
            ],
        }


def _describe(err: BaseException) -> str:
    name = err.name if isinstance(err, TritonError) else type(err).__name__
    return f"error ({name}): {err}"


def is_not_found(err: BaseException) -> bool:
    """Return True for any flavour of "resource not found"."""
    if isinstance(err, ResourceNotFoundError):
        return True
    if isinstance(err, ServerError) and err.rest_code == "ResourceNotFound":
        return True
    return isinstance(err, HttpError) and err.status_code == 404
