"""Response Decoder / Error Mapper.

Reads the status first. Responses inside the operation's success range are
decoded into its declared response type; everything else becomes an
ApiError with the raw body preserved.
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any

from pydantic import TypeAdapter, ValidationError

from lakefs_client.errors import ApiError, DeserializationFailure
from lakefs_client.models import ApiResponse, ErrorPayload, OperationDescriptor
from lakefs_client.negotiation import is_json_mime


@lru_cache(maxsize=None)
def _adapter(response_type: Any) -> TypeAdapter:
    return TypeAdapter(response_type)


def decode_error_payload(body: bytes) -> ErrorPayload | None:
    """Decode an error body, or None if it is not a JSON object."""
    if not body:
        return None
    try:
        parsed = json.loads(body)
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None
    try:
        return ErrorPayload.model_validate(parsed)
    except ValidationError:
        return None


def decode_response(
    descriptor: OperationDescriptor,
    status_code: int,
    headers: dict[str, list[str]],
    body: bytes,
) -> ApiResponse:
    """Turn a received response into an ApiResponse or raise.

    Args:
        descriptor: Operation the response belongs to.
        status_code: HTTP status code.
        headers: Response headers (lowercase keys, list values).
        body: Raw response body.

    Returns:
        ApiResponse with data decoded to descriptor.response_type.

    Raises:
        ApiError: Status outside the success range.
        DeserializationFailure: Success status but the body cannot be decoded.
    """
    if not descriptor.is_success(status_code):
        error = decode_error_payload(body)
        message = error.message if error is not None and error.message else f"HTTP {status_code}"
        raise ApiError(
            message,
            status_code=status_code,
            headers=headers,
            body=body,
            error=error,
        )

    data = _decode_body(descriptor, status_code, headers, body)
    return ApiResponse(status_code=status_code, headers=headers, data=data)


def _decode_empty(
    descriptor: OperationDescriptor,
    response_type: Any,
    status_code: int,
    headers: dict[str, list[str]],
) -> Any:
    """An empty body is only a value if the declared type admits one."""
    if response_type is str:
        return ""
    try:
        return _adapter(response_type).validate_python(None)
    except ValidationError as e:
        expected = getattr(response_type, "__name__", response_type)
        raise DeserializationFailure(
            f"Empty response body for {descriptor.operation_id}, expected {expected}",
            status_code=status_code,
            headers=headers,
            body=b"",
        ) from e


def _decode_body(
    descriptor: OperationDescriptor,
    status_code: int,
    headers: dict[str, list[str]],
    body: bytes,
) -> Any:
    response_type = descriptor.response_type

    if response_type is None:
        return None
    # Binary payloads are handed over untouched, whatever the Content-Type says
    if response_type is bytes:
        return body
    if not body:
        return _decode_empty(descriptor, response_type, status_code, headers)

    content_types = headers.get("content-type") or []
    # A missing Content-Type is treated as JSON
    content_type = content_types[0] if content_types else "application/json"

    if response_type is str and not is_json_mime(content_type):
        return body.decode("utf-8", errors="replace")

    if not is_json_mime(content_type):
        raise DeserializationFailure(
            f"Content type '{content_type}' is not supported for {descriptor.operation_id}",
            status_code=status_code,
            headers=headers,
            body=body,
        )

    try:
        return _adapter(response_type).validate_json(body)
    except ValidationError as e:
        raise DeserializationFailure(
            f"Cannot decode {descriptor.operation_id} response: {e}",
            status_code=status_code,
            headers=headers,
            body=body,
        ) from e
