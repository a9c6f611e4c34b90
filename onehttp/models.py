"""Data models for onehttp.

All models use Pydantic v2. Requests and responses are immutable once built;
a Response never holds a reference back to the transport that produced it.
"""

from __future__ import annotations

from datetime import timedelta
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")

_INFINITE_LEASE = frozenset({"infinite", "none", "never", "-1"})


# =============================================================================
# Enumerations
# =============================================================================


class HttpMethod(str, Enum):
    """HTTP verbs supported by the service."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


class MediaType(str, Enum):
    """Wire encoding used for request bodies."""

    JSON = "json"  # serialized, Content-Type: application/json
    XML = "xml"  # serialized, Content-Type: application/xml
    PLAIN_TEXT = "plain-text"  # str body, Content-Type: text/plain
    UNKNOWN_TEXT = "unknown-text"  # str body, caller sets Content-Type
    RAW_BYTES = "raw-bytes"  # bytes body sent as-is, caller sets Content-Type


class NamingStrategy(str, Enum):
    """Key casing applied to JSON object keys."""

    NONE = "none"
    CAMEL_CASE = "camel-case"
    SNAKE_CASE = "snake-case"


class NullValueHandling(str, Enum):
    """Whether null-valued entries are written/read in JSON."""

    INCLUDE = "include"
    IGNORE = "ignore"


# =============================================================================
# Absent typed payload
# =============================================================================


class _Absent:
    """Marker for "no typed payload": decode not attempted or failed.

    Distinct from None, which is a legitimate decoded JSON null.
    """

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _Absent:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> _Absent:
        return self

    def __reduce__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


# =============================================================================
# Request Models
# =============================================================================


class RequestOptions(BaseModel):
    """Per-call options. Defaults match a plain JSON call with camelCase keys."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    timeout_seconds: float = Field(
        default=0,
        ge=0,
        description="Per-call deadline; 0 means process default only. Only narrows the default.",
    )
    media_type: MediaType = Field(default=MediaType.JSON, description="Request body encoding")
    naming_strategy: NamingStrategy = Field(
        default=NamingStrategy.CAMEL_CASE, description="JSON key casing (encode and decode)"
    )
    null_value_handling: NullValueHandling = Field(
        default=NullValueHandling.INCLUDE, description="JSON null handling (encode and decode)"
    )


class HttpRequest(BaseModel):
    """Fully-formed request descriptor produced by build_request.

    Header lists keep insertion order and allow repeated names. Entity headers
    (Content-*, Expires, ...) are kept apart from request headers so the
    codec-chosen Content-Type can never be overridden.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: HttpMethod = Field(description="HTTP method")
    url: str = Field(description="Absolute target URL")
    content: bytes | None = Field(default=None, description="Encoded body, None when no body")
    content_type: str | None = Field(
        default=None, description="Content-Type: the codec's choice, else the caller's"
    )
    headers: list[tuple[str, str]] = Field(default_factory=list, description="Request headers")
    content_headers: list[tuple[str, str]] = Field(
        default_factory=list, description="Entity headers applied to the body"
    )

    def wire_headers(self) -> list[tuple[str, str]]:
        """Flatten request, entity and codec headers into the list sent on the wire."""
        wire = list(self.headers)
        wire.extend(self.content_headers)
        if self.content_type is not None:
            wire.append(("Content-Type", self.content_type))
        return wire


# =============================================================================
# Response Models
# =============================================================================


class Response(BaseModel):
    """One captured HTTP response.

    Header keys are lowercase. Repeated header values are joined with ",".
    The body is always a string; an absent body is "".
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    status_code: int = Field(description="HTTP status code")
    headers: dict[str, str] = Field(default_factory=dict, description="Response and content headers")
    response_body: str = Field(default="", description="Raw body text")
    elapsed_time: timedelta = Field(
        default_factory=timedelta, description="Time from send to full body read"
    )

    @field_validator("headers", mode="before")
    @classmethod
    def lowercase_header_names(cls, value: Any) -> Any:
        if isinstance(value, dict):
            merged: dict[str, str] = {}
            for key, item in value.items():
                name = str(key).lower()
                merged[name] = f"{merged[name]},{item}" if name in merged else item
            return merged
        return value

    @field_validator("response_body", mode="before")
    @classmethod
    def none_body_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def is_success_status_code(self) -> bool:
        """True for 2xx status codes."""
        return 200 <= self.status_code <= 299

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed_time.total_seconds() * 1000

    def header(self, name: str, default: str | None = None) -> str | None:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)


class TypedResponse(Response, Generic[T]):
    """Response plus a best-effort decoded payload.

    response_data is ABSENT when the content type is not decodable or the
    body could not be interpreted as the requested type. The raw body is
    always populated regardless.
    """

    response_data: Any = Field(default=ABSENT, description="Decoded payload or ABSENT")

    @property
    def has_data(self) -> bool:
        return self.response_data is not ABSENT

    @classmethod
    def from_response(
        cls,
        response: Response,
        response_type: Any = None,
        naming_strategy: NamingStrategy = NamingStrategy.CAMEL_CASE,
        null_value_handling: NullValueHandling = NullValueHandling.INCLUDE,
    ) -> TypedResponse[Any]:
        """Build a typed response from an already-captured one. Performs no I/O.

        The captured headers and body are decoded into *response_type* on a
        best-effort basis. Without a type, or when decoding fails, the payload
        is ABSENT.
        """
        from onehttp.codec import try_decode

        response_data = ABSENT
        if response_type is not None:
            response_data = try_decode(
                response.headers,
                response.response_body,
                response_type,
                naming_strategy,
                null_value_handling,
            )
        return cls(
            status_code=response.status_code,
            headers=dict(response.headers),
            response_body=response.response_body,
            elapsed_time=response.elapsed_time,
            response_data=response_data,
        )


# =============================================================================
# Configuration Models
# =============================================================================


class TransportSettings(BaseModel):
    """Process-wide transport configuration, applied once."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    request_timeout: float = Field(
        default=100.0, gt=0, description="Default deadline in seconds for every request"
    )
    connection_lease_timeout: float | None = Field(
        default=600.0,
        ge=0,
        description="Seconds before a pooled connection is recycled; None means never",
    )
    connection_limit: int = Field(default=10, gt=0, description="Maximum simultaneous connections")
    follow_redirects: bool = Field(default=True, description="Follow 3xx redirects")

    @field_validator("connection_lease_timeout", mode="before")
    @classmethod
    def parse_infinite_lease(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in _INFINITE_LEASE:
            return None
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value == -1:
            return None
        return value
