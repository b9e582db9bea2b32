"""Error taxonomy for the lakeFS client runtime.

Pre-flight errors (MissingParameter, SerializationFailure) are raised before
any network activity, on both the blocking and non-blocking paths.

Post-flight errors are all ApiError subclasses so a non-blocking callback
receives exactly what a blocking caller would have caught:
    ApiError               - status code outside the operation's success range
    TransportFailure       - no status available (connect, TLS, timeout, cancel)
    DeserializationFailure - success status but the body could not be decoded
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lakefs_client.models import ErrorPayload


class ClientError(Exception):
    """Base class for lakeFS client errors."""


class MissingParameter(ClientError):
    """Raised when a required parameter is absent before a call is built."""

    def __init__(self, parameter: str, operation_id: str) -> None:
        self.parameter = parameter
        self.operation_id = operation_id
        super().__init__(
            f"Missing the required parameter '{parameter}' when calling {operation_id}"
        )


class SerializationFailure(ClientError):
    """Raised when a request body or form could not be encoded."""


class ApiError(ClientError):
    """Structured failure of a dispatched call.

    Carries enough to reconstruct the failure without contacting the server
    again: status code, response headers (lowercase keys, list values), the
    raw body bytes, and the decoded error payload when the body had one.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        headers: dict[str, list[str]] | None = None,
        body: bytes = b"",
        error: ErrorPayload | None = None,
        transport_failure: bool = False,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.headers = headers or {}
        self.body = body
        self.error = error
        self.transport_failure = transport_failure
        super().__init__(message)

    @property
    def body_text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def __str__(self) -> str:
        parts = [f"Message: {self.message}"]
        if self.status_code is not None:
            parts.append(f"HTTP response code: {self.status_code}")
        if self.body:
            parts.append(f"HTTP response body: {self.body_text}")
        return "\n".join(parts)


class TransportFailure(ApiError):
    """Raised when the exchange fails before a status code is obtained."""

    def __init__(
        self,
        message: str,
        cancelled: bool = False,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message, transport_failure=True)
        self.cancelled = cancelled
        self.timed_out = timed_out


class DeserializationFailure(ApiError):
    """Raised when a successful response body cannot be decoded."""
