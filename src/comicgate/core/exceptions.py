"""Custom exception hierarchy for ComicGate.

Every error a service raises carries a machine-readable code and the HTTP
status the API answers with. Router outcomes additionally say whether the
next mirror should be tried.

Usage:
    from comicgate.core.exceptions import ApplicationError

    raise ApplicationError("Comic not found", http_status=200, api_code=404)
"""

from typing import Any


class ComicGateError(Exception):
    """Base exception for all ComicGate errors.

    The API renders any subclass as ``{"error": {...}}`` with its status.

    Attributes:
        code: Machine-readable error code (e.g., "API_ERROR")
        message: Human-readable error message
        status_code: HTTP status code to return
        details: Additional error details (optional)
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if message:
            self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Build the ``{"error": ...}`` response body.

        Args:
            request_id: Value of the X-Request-ID header

        Returns:
            Error response dictionary
        """
        error: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if request_id:
            error["request_id"] = request_id
        if self.details:
            error["details"] = self.details
        return {"error": error}


# =============================================================================
# Retrieval Errors (router outcomes)
# =============================================================================


class RetrievalError(ComicGateError):
    """Base class for outcomes of a mirror request.

    ``retryable`` tells the failover router whether the next mirror
    candidate should be tried.
    """

    code: str = "RETRIEVAL_ERROR"
    message: str = "Request to the upstream API failed"
    status_code: int = 502
    retryable: bool = False


class TransportError(RetrievalError):
    """Timeout, refused connection or another network-level failure."""

    code: str = "TRANSPORT_ERROR"
    message: str = "Network request failed"
    retryable: bool = True

    def __init__(
        self,
        message: str | None = None,
        base: str | None = None,
        retryable: bool = True,
    ) -> None:
        details: dict[str, Any] = {}
        if base:
            details["base"] = base
        self.retryable = retryable
        super().__init__(message=message, details=details if details else None)


class TransientServerError(RetrievalError):
    """5xx-class status or a wrong-domain body served by a mirror."""

    code: str = "UPSTREAM_UNAVAILABLE"
    message: str = "Upstream mirror is unavailable"
    retryable: bool = True

    def __init__(
        self,
        message: str | None = None,
        http_status: int | None = None,
        base: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if http_status is not None:
            details["http_status"] = http_status
        if base:
            details["base"] = base
        self.http_status = http_status
        super().__init__(message=message, details=details if details else None)


class ApplicationError(RetrievalError):
    """The API answered with a non-200 envelope code.

    This is a legitimate rejection, never retried on another mirror.
    The server message is kept verbatim in ``message``.
    """

    code: str = "API_ERROR"
    message: str = "The API rejected the request"
    status_code: int = 400

    def __init__(
        self,
        message: str | None = None,
        http_status: int = 200,
        api_code: int | None = None,
    ) -> None:
        self.http_status = http_status
        self.api_code = api_code
        details: dict[str, Any] = {"http_status": http_status}
        if api_code is not None:
            details["api_code"] = api_code
        super().__init__(message=message, details=details)

    @property
    def is_auth_expired(self) -> bool:
        """True when the session cookies were refused."""
        return self.http_status in (401, 403)


class DecodeError(RetrievalError):
    """Malformed envelope, undecryptable payload or non-JSON plaintext."""

    code: str = "DECODE_ERROR"
    message: str = "Failed to decode the API response"


# =============================================================================
# Reading Errors
# =============================================================================


class ReadCancelledError(ComicGateError):
    """A read session was cancelled at one of the cooperative checkpoints."""

    code: str = "READ_CANCELLED"
    message: str = "Read cancelled"
    status_code: int = 499

    def __init__(self, stage: str, key: str | None = None) -> None:
        details: dict[str, Any] = {"stage": stage}
        if key:
            details["key"] = key
        self.stage = stage
        super().__init__(details=details)


class ImageError(ComicGateError):
    """Downloading, decoding or encoding a page image failed."""

    code: str = "IMAGE_ERROR"
    message: str = "Image processing failed"
    status_code: int = 502

    def __init__(
        self,
        message: str | None = None,
        url: str | None = None,
        http_status: int | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if url:
            details["url"] = url
        if http_status is not None:
            details["http_status"] = http_status
        self.http_status = http_status
        super().__init__(message=message, details=details if details else None)


class DiscoveryError(ComicGateError):
    """No discovery URL produced a usable mirror list."""

    code: str = "DISCOVERY_FAILED"
    message: str = "Failed to fetch the mirror list"
    status_code: int = 502


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(ComicGateError):
    """Raised when caller input validation fails."""

    code: str = "VALIDATION_ERROR"
    message: str = "Validation error"
    status_code: int = 400

    def __init__(
        self,
        message: str | None = None,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with optional field information."""
        if details is None:
            details = {}
        if field:
            details["field"] = field
        super().__init__(message=message, details=details if details else None)
