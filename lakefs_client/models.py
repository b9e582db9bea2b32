"""Data models for the lakeFS client.

Runtime and configuration models use Pydantic v2. Operation descriptors are
frozen dataclasses because they carry Python types (the declared response
type) rather than data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Operation Descriptors
# =============================================================================


class ParamLocation(str, Enum):
    """Where a parameter travels on the wire."""

    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    COOKIE = "cookie"
    FORM = "form"


class CollectionFormat(str, Enum):
    """Wire convention for a multi-valued parameter."""

    CSV = "csv"  # amount=1,2
    MULTI = "multi"  # amount=1&amount=2
    SSV = "ssv"  # amount=1 2
    TSV = "tsv"  # amount=1\t2
    PIPES = "pipes"  # amount=1|2


@dataclass(frozen=True)
class ParameterSpec:
    """One declared parameter of an operation.

    Attributes:
        name: Name used by callers (Python keyword argument name).
        location: Where the parameter is sent.
        required: Whether the call must fail pre-flight when it is absent.
        default: Value used when an optional parameter is omitted.
        collection_format: Expansion rule for list values.
        wire_name: Name on the wire, if different from name (e.g. run_id).
    """

    name: str
    location: ParamLocation
    required: bool = False
    default: Any = None
    collection_format: CollectionFormat = CollectionFormat.CSV
    wire_name: str | None = None

    @property
    def key(self) -> str:
        return self.wire_name or self.name


@dataclass(frozen=True)
class OperationDescriptor:
    """Static shape of one API endpoint.

    response_type is anything pydantic's TypeAdapter understands, bytes for
    an undecoded binary payload, or None when the operation returns no body.
    success_range is inclusive on both ends.
    """

    operation_id: str
    method: str
    path: str
    parameters: tuple[ParameterSpec, ...] = ()
    accepts: tuple[str, ...] = ()
    content_types: tuple[str, ...] = ()
    auth_names: tuple[str, ...] = ()
    response_type: Any = None
    body_required: bool = False
    success_range: tuple[int, int] = (200, 299)

    @property
    def required_parameters(self) -> tuple[ParameterSpec, ...]:
        return tuple(p for p in self.parameters if p.required)

    @property
    def optional_parameters(self) -> tuple[ParameterSpec, ...]:
        return tuple(p for p in self.parameters if not p.required)

    def parameter(self, name: str) -> ParameterSpec | None:
        for spec in self.parameters:
            if spec.name == name or spec.key == name:
                return spec
        return None

    def is_success(self, status_code: int) -> bool:
        low, high = self.success_range
        return low <= status_code <= high


# =============================================================================
# Core HTTP Models
# =============================================================================


class ApiRequest(BaseModel):
    """A fully specified request that has not been sent.

    Query values are (name, value) pairs so repeated parameters keep every
    value. content holds the already-encoded body.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    operation_id: str = Field(description="Operation the request was built for")
    method: str = Field(description="HTTP method (GET, POST, etc.)")
    url: str = Field(description="Absolute URL without the query string")
    path: str = Field(description="Path after placeholder substitution")
    query: tuple[tuple[str, str], ...] = Field(
        default=(), description="Query parameters in wire order"
    )
    headers: dict[str, str] = Field(default_factory=dict, description="Request headers")
    cookies: dict[str, str] = Field(default_factory=dict, description="Cookies")
    content: bytes | None = Field(default=None, description="Encoded request body")
    media_type: str | None = Field(default=None, description="Content-Type of content")


class ApiResponse(BaseModel):
    """Decoded result of a successful call.

    Header keys are lowercase. Header values are arrays for repeated headers.
    """

    model_config = ConfigDict(frozen=True)

    status_code: int = Field(description="HTTP status code")
    headers: dict[str, list[str]] = Field(
        default_factory=dict, description="Response headers (lowercase keys, array values)"
    )
    data: Any = Field(default=None, description="Payload decoded to the declared type")

    def header(self, name: str) -> str | None:
        """First value of a response header, or None."""
        values = self.headers.get(name.lower())
        return values[0] if values else None


# =============================================================================
# lakeFS Actions Models
# =============================================================================


class ErrorPayload(BaseModel):
    """Error body returned by the server for failed calls."""

    model_config = ConfigDict(extra="ignore")

    code: str | None = Field(default=None, description="Machine-readable error code")
    message: str | None = Field(default=None, description="Human-readable message")


class Pagination(BaseModel):
    model_config = ConfigDict(extra="ignore")

    has_more: bool = False
    next_offset: str = ""
    results: int = 0
    max_per_page: int = 0


class RunStatus(str, Enum):
    FAILED = "failed"
    COMPLETED = "completed"


class ActionRun(BaseModel):
    """One execution of the actions triggered by a repository event."""

    model_config = ConfigDict(extra="ignore")

    run_id: str
    status: RunStatus
    branch: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    event_type: str | None = None
    commit_id: str | None = None


class ActionRunList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pagination: Pagination = Field(default_factory=Pagination)
    results: list[ActionRun] = Field(default_factory=list)


class HookRun(BaseModel):
    """One hook executed as part of an action run."""

    model_config = ConfigDict(extra="ignore")

    hook_run_id: str
    action: str
    hook_id: str
    status: RunStatus
    start_time: datetime | None = None
    end_time: datetime | None = None


class HookRunList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pagination: Pagination = Field(default_factory=Pagination)
    results: list[HookRun] = Field(default_factory=list)


# =============================================================================
# Runtime Configuration Models
# =============================================================================


class CredentialsConfig(BaseModel):
    """Credentials section of the client configuration."""

    model_config = ConfigDict(extra="forbid")

    username: str | None = Field(default=None, description="Access key ID for basic auth")
    password: str | None = Field(default=None, description="Secret access key for basic auth")
    access_token: str | None = Field(default=None, description="Bearer (JWT) token")
    api_keys: dict[str, str] = Field(
        default_factory=dict, description="Scheme name -> API key (e.g. cookie_auth)"
    )
    api_key_prefixes: dict[str, str] = Field(
        default_factory=dict, description="Scheme name -> key prefix"
    )


class ClientConfig(BaseModel):
    """Top-level client configuration file structure."""

    model_config = ConfigDict(extra="forbid")

    host: str = Field(
        default="http://localhost:8000/api/v1", description="Base URL including the API prefix"
    )
    timeout: float = Field(default=30.0, description="Read/write/pool timeout in seconds")
    connect_timeout: float | None = Field(
        default=None, description="Connect timeout in seconds (defaults to timeout)"
    )
    verify_ssl: bool = Field(default=True, description="Verify server certificates")
    ca_bundle: str | None = Field(default=None, description="Path to a CA bundle")
    user_agent: str = Field(default="lakefs-client-python/0.1.0", description="User-Agent")
    default_headers: dict[str, str] = Field(
        default_factory=dict, description="Headers sent with every request"
    )
    accept_preferences: list[str] = Field(
        default_factory=list, description="Preferred response media types, most preferred first"
    )
    max_workers: int = Field(default=4, description="Worker threads for non-blocking calls")
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)

    @field_validator("host")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("timeout", "max_workers")
    @classmethod
    def must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v
