"""Call Builder - Assembles a complete, unsent request for an operation.

Validation of required parameters happens here, before anything touches
the network and before any callback is registered, so a missing parameter
surfaces synchronously whether the caller later blocks or not.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Sequence

import httpx
from pydantic import BaseModel
from pydantic_core import PydanticSerializationError, to_jsonable_python

from lakefs_client.auth import AuthScheme, CredentialStore, apply_auth, default_auth_schemes
from lakefs_client.calls import ApiCallback, PendingCall
from lakefs_client.encoding import encode_form_fields, encode_pairs, encode_scalar_map, render_path
from lakefs_client.errors import MissingParameter, SerializationFailure
from lakefs_client.models import (
    ApiRequest,
    ClientConfig,
    CollectionFormat,
    OperationDescriptor,
    ParamLocation,
)
from lakefs_client.negotiation import is_json_mime, select_accept, select_content_type

logger = logging.getLogger(__name__)

FORM_URLENCODED = "application/x-www-form-urlencoded"
MULTIPART_FORM = "multipart/form-data"


def _is_file_part(value: Any) -> bool:
    return isinstance(value, (bytes, bytearray, tuple)) or hasattr(value, "read")


def _check_ascii(descriptor: OperationDescriptor, values: Mapping[str, str], kind: str) -> None:
    """HTTP header fields are ASCII (RFC 7230); reject anything else up front."""
    for name, value in values.items():
        try:
            name.encode("ascii")
            value.encode("ascii")
        except UnicodeEncodeError as e:
            raise SerializationFailure(
                f"Non-ASCII {kind} '{name}' in {descriptor.operation_id}: "
                f"{e.object[e.start:e.end]!r} at position {e.start}"
            ) from e


class CallBuilder:
    """Builds PendingCall objects from operation descriptors.

    Usage:
        builder = CallBuilder(config, credentials)
        call = builder.build_call(GET_RUN, path_params={"repository": "repo1", "run_id": "r1"})
    """

    def __init__(
        self,
        config: ClientConfig,
        credentials: CredentialStore,
        auth_schemes: Mapping[str, AuthScheme] | None = None,
    ) -> None:
        self._config = config
        self._credentials = credentials
        self._auth_schemes = dict(auth_schemes) if auth_schemes is not None else default_auth_schemes()

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    def build_call(
        self,
        descriptor: OperationDescriptor,
        path_params: Mapping[str, Any] | None = None,
        query_params: Mapping[str, Any] | None = None,
        header_params: Mapping[str, Any] | None = None,
        cookie_params: Mapping[str, Any] | None = None,
        form_params: Mapping[str, Any] | None = None,
        body: Any = None,
        auth_names: Sequence[str] | None = None,
        callback: ApiCallback | None = None,
    ) -> PendingCall:
        """Validate inputs and build a request for one operation.

        Parameter mappings are keyed by wire name. Optional parameters that
        are absent get their declared default; None values are omitted.

        Args:
            descriptor: The operation to call.
            path_params: Values for {name} placeholders.
            query_params: Query parameters (lists expand per the descriptor).
            header_params: Extra request headers.
            cookie_params: Cookies.
            form_params: Form fields (urlencoded or multipart).
            body: Request body (model, dict/list, str, or bytes).
            auth_names: Auth schemes to apply. Defaults to descriptor.auth_names.
            callback: Progress callback bound to the call.

        Returns:
            A PendingCall ready for execute() or execute_async().

        Raises:
            MissingParameter: If a required parameter or body is absent.
            SerializationFailure: If the body or form cannot be encoded.
        """
        groups: dict[ParamLocation, dict[str, Any]] = {
            ParamLocation.PATH: dict(path_params or {}),
            ParamLocation.QUERY: dict(query_params or {}),
            ParamLocation.HEADER: dict(header_params or {}),
            ParamLocation.COOKIE: dict(cookie_params or {}),
            ParamLocation.FORM: dict(form_params or {}),
        }

        self._validate(descriptor, groups, body)
        self._apply_defaults(descriptor, groups)

        path = render_path(descriptor.path, groups[ParamLocation.PATH], descriptor.operation_id)
        formats = self._collection_formats(descriptor)

        query = encode_pairs(
            (name, value, formats.get(name, CollectionFormat.CSV))
            for name, value in groups[ParamLocation.QUERY].items()
        )

        headers: dict[str, str] = dict(self._config.default_headers)
        headers["User-Agent"] = self._config.user_agent
        headers.update(encode_scalar_map(groups[ParamLocation.HEADER], formats))

        accept = select_accept(descriptor.accepts, self._config.accept_preferences)
        if accept is not None:
            headers["Accept"] = accept

        content_type = select_content_type(descriptor.content_types)
        content, media_type = self._serialize_body(
            descriptor, body, groups[ParamLocation.FORM], content_type, formats
        )
        if media_type is not None:
            headers["Content-Type"] = media_type

        cookies = encode_scalar_map(groups[ParamLocation.COOKIE], formats)

        contribution = apply_auth(
            descriptor.auth_names if auth_names is None else auth_names,
            self._auth_schemes,
            self._credentials,
        )
        headers.update(contribution.headers)
        query.extend(contribution.query)
        cookies.update(contribution.cookies)

        _check_ascii(descriptor, headers, "header")
        _check_ascii(descriptor, cookies, "cookie")

        request = ApiRequest(
            operation_id=descriptor.operation_id,
            method=descriptor.method.upper(),
            url=f"{self._config.host}{path}",
            path=path,
            query=tuple(query),
            headers=headers,
            cookies=cookies,
            content=content,
            media_type=media_type,
        )
        return PendingCall(request, descriptor, callback)

    def build_call_for(
        self,
        descriptor: OperationDescriptor,
        body: Any = None,
        callback: ApiCallback | None = None,
        **params: Any,
    ) -> PendingCall:
        """Build a call from keyword arguments named after the descriptor's parameters.

        Raises:
            TypeError: If a keyword does not name a declared parameter.
        """
        groups: dict[ParamLocation, dict[str, Any]] = {location: {} for location in ParamLocation}
        for name, value in params.items():
            spec = descriptor.parameter(name)
            if spec is None:
                raise TypeError(f"{descriptor.operation_id}() got an unexpected parameter '{name}'")
            groups[spec.location][spec.key] = value

        return self.build_call(
            descriptor,
            path_params=groups[ParamLocation.PATH],
            query_params=groups[ParamLocation.QUERY],
            header_params=groups[ParamLocation.HEADER],
            cookie_params=groups[ParamLocation.COOKIE],
            form_params=groups[ParamLocation.FORM],
            body=body,
            callback=callback,
        )

    def _validate(
        self,
        descriptor: OperationDescriptor,
        groups: dict[ParamLocation, dict[str, Any]],
        body: Any,
    ) -> None:
        for spec in descriptor.required_parameters:
            if groups[spec.location].get(spec.key) is None:
                raise MissingParameter(spec.name, descriptor.operation_id)
        if descriptor.body_required and body is None:
            raise MissingParameter("body", descriptor.operation_id)

    def _apply_defaults(
        self,
        descriptor: OperationDescriptor,
        groups: dict[ParamLocation, dict[str, Any]],
    ) -> None:
        for spec in descriptor.optional_parameters:
            if spec.default is not None and groups[spec.location].get(spec.key) is None:
                groups[spec.location][spec.key] = spec.default

    @staticmethod
    def _collection_formats(descriptor: OperationDescriptor) -> dict[str, CollectionFormat]:
        """Wire name -> collection format for every declared parameter."""
        return {spec.key: spec.collection_format for spec in descriptor.parameters}

    def _serialize_body(
        self,
        descriptor: OperationDescriptor,
        body: Any,
        form_params: dict[str, Any],
        content_type: str,
        formats: dict[str, CollectionFormat],
    ) -> tuple[bytes | None, str | None]:
        """Encode the body (or form) for content_type.

        Returns:
            (content, media_type); both None when there is nothing to send.
        """
        form = {name: value for name, value in form_params.items() if value is not None}
        if form:
            return self._serialize_form(descriptor, form, content_type, formats)

        if body is None:
            return None, None

        if isinstance(body, (bytes, bytearray)):
            return bytes(body), content_type

        if is_json_mime(content_type):
            try:
                payload = to_jsonable_python(body, by_alias=True, exclude_none=True)
                return json.dumps(payload).encode("utf-8"), content_type
            except (TypeError, ValueError, PydanticSerializationError) as e:
                raise SerializationFailure(
                    f"Cannot encode body for {descriptor.operation_id} as {content_type}: {e}"
                ) from e

        if isinstance(body, str):
            return body.encode("utf-8"), content_type

        raise SerializationFailure(
            f"Content type '{content_type}' is not supported for body of type "
            f"{type(body).__name__} in {descriptor.operation_id}"
        )

    def _serialize_form(
        self,
        descriptor: OperationDescriptor,
        form: dict[str, Any],
        content_type: str,
        formats: dict[str, CollectionFormat],
    ) -> tuple[bytes, str]:
        # httpx owns the urlencoded and multipart encoders; let it render the
        # body once and keep the bytes plus the Content-Type (with boundary).
        try:
            if content_type.lower().startswith(MULTIPART_FORM):
                files = {name: value for name, value in form.items() if _is_file_part(value)}
                data = encode_form_fields(
                    {name: value for name, value in form.items() if name not in files}, formats
                )
                encoded = httpx.Request("POST", self._config.host, data=data, files=files)
            else:
                data = encode_form_fields(form, formats)
                encoded = httpx.Request("POST", self._config.host, data=data)
            content = encoded.read()
        except (TypeError, ValueError, OSError) as e:
            raise SerializationFailure(
                f"Cannot encode form for {descriptor.operation_id}: {e}"
            ) from e

        media_type = encoded.headers.get("Content-Type", FORM_URLENCODED)
        return content, media_type
