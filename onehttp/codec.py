"""Media codec - Encodes request bodies and decodes response bodies.

Encoding is strict: a value that cannot be written in the selected media type
raises EncodingError. Decoding is best-effort: decode_body raises DecodeError
when the body cannot be interpreted, and try_decode turns every DecodeError
into ABSENT so a malformed body never fails the request that carried it.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import typing
import xml.etree.ElementTree as ET
from collections.abc import Callable, Mapping
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, PydanticUserError, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from onehttp.models import (
    ABSENT,
    MediaType,
    NamingStrategy,
    NullValueHandling,
    RequestOptions,
)
from onehttp.naming import prepare_incoming, prepare_outgoing
from onehttp.xml_body import build_xml, parse_xml

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
XML_CONTENT_TYPE = "application/xml"
PLAIN_TEXT_CONTENT_TYPE = "text/plain"


class CodecError(Exception):
    """Base class for codec errors."""


class EncodingError(CodecError, ValueError):
    """Raised when data cannot be encoded for the selected media type."""


class DecodeError(CodecError):
    """Raised when a response body cannot be decoded into the requested type."""


class UnsupportedContentError(DecodeError):
    """Raised when no decode is attempted (empty body, missing or unsupported Content-Type)."""


@dataclasses.dataclass(frozen=True)
class EncodedBody:
    """Encoded request body. content_type is None when the caller must set it."""

    content: bytes
    content_type: str | None


# =============================================================================
# Encoding
# =============================================================================


def _to_plain(data: Any) -> Any:
    try:
        return to_jsonable_python(data)
    except (PydanticSerializationError, ValueError) as e:
        raise EncodingError(f"Cannot serialize {type(data).__name__}: {e}") from e


def _encode_json(data: Any, options: RequestOptions) -> EncodedBody:
    plain = prepare_outgoing(
        _to_plain(data), options.naming_strategy, options.null_value_handling, source=data
    )
    try:
        text = json.dumps(plain, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except ValueError as e:
        raise EncodingError(f"Cannot serialize {type(data).__name__} as JSON: {e}") from e
    return EncodedBody(text.encode("utf-8"), JSON_CONTENT_TYPE)


def _encode_xml(data: Any, options: RequestOptions) -> EncodedBody:
    if isinstance(data, Mapping):
        if len(data) != 1:
            raise EncodingError(
                f"XML body mapping must have exactly one key (the root element), got {len(data)}"
            )
        root_tag = str(next(iter(data)))
        value = _to_plain(next(iter(data.values())))
    elif isinstance(data, BaseModel) or (
        dataclasses.is_dataclass(data) and not isinstance(data, type)
    ):
        root_tag = type(data).__name__
        value = _to_plain(data)
    else:
        raise EncodingError(
            f"XML body must be a model, a dataclass or a single-key mapping, got {type(data).__name__}"
        )
    try:
        return EncodedBody(build_xml(root_tag, value), XML_CONTENT_TYPE)
    except ValueError as e:
        raise EncodingError(f"Cannot serialize {type(data).__name__} as XML: {e}") from e


def _require_str(data: Any, media_type: MediaType) -> str:
    if not isinstance(data, str):
        raise EncodingError(
            f"{media_type.value} body must be a str, got {type(data).__name__}"
        )
    return data


def _encode_plain_text(data: Any, options: RequestOptions) -> EncodedBody:
    text = _require_str(data, MediaType.PLAIN_TEXT)
    return EncodedBody(text.encode("utf-8"), PLAIN_TEXT_CONTENT_TYPE)


def _encode_unknown_text(data: Any, options: RequestOptions) -> EncodedBody:
    text = _require_str(data, MediaType.UNKNOWN_TEXT)
    return EncodedBody(text.encode("utf-8"), None)


def _encode_raw_bytes(data: Any, options: RequestOptions) -> EncodedBody:
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise EncodingError(f"raw-bytes body must be bytes, got {type(data).__name__}")
    return EncodedBody(bytes(data), None)


_ENCODERS: dict[MediaType, Callable[[Any, RequestOptions], EncodedBody]] = {
    MediaType.JSON: _encode_json,
    MediaType.XML: _encode_xml,
    MediaType.PLAIN_TEXT: _encode_plain_text,
    MediaType.UNKNOWN_TEXT: _encode_unknown_text,
    MediaType.RAW_BYTES: _encode_raw_bytes,
}

# Every media type needs an encoder; fail at import rather than at request time.
_missing_encoders = set(MediaType) - set(_ENCODERS)
if _missing_encoders:
    raise RuntimeError(f"No encoder registered for {sorted(m.value for m in _missing_encoders)}")


def encode(data: Any, options: RequestOptions | None = None) -> EncodedBody | None:
    """Encode *data* as a request body for ``options.media_type``.

    Returns:
        EncodedBody, or None when data is None (no body, no Content-Type).

    Raises:
        EncodingError: If data has the wrong kind for the media type or
            cannot be serialized.
    """
    if data is None:
        return None
    options = options or RequestOptions()
    return _ENCODERS[options.media_type](data, options)


# =============================================================================
# Decoding
# =============================================================================


@lru_cache(maxsize=256)
def _cached_adapter(response_type: Any) -> TypeAdapter[Any]:
    return TypeAdapter(response_type)


def _adapter(response_type: Any) -> TypeAdapter[Any]:
    try:
        hash(response_type)
    except TypeError:
        return TypeAdapter(response_type)
    return _cached_adapter(response_type)


def _content_type(headers: Mapping[str, str] | None) -> str:
    if not headers:
        return ""
    for key, value in headers.items():
        if key.lower() == "content-type":
            return value or ""
    return ""


def _validate(response_type: Any, data: Any) -> Any:
    try:
        adapter = _adapter(response_type)
    except PydanticUserError as e:
        raise DecodeError(f"Cannot decode into {response_type!r}: {e}") from e
    try:
        return adapter.validate_python(data)
    except ValidationError as e:
        raise DecodeError(f"Body does not match {response_type!r}: {e.error_count()} error(s)") from e
    except RecursionError as e:
        raise DecodeError(f"Body is nested too deeply for {response_type!r}") from e


def _sequence_fields(response_type: Any, seen: set[Any] | None = None) -> set[str]:
    """Names of fields annotated as sequences, at any depth. Used to keep XML lists as lists."""
    seen = seen if seen is not None else set()
    try:
        if response_type in seen:
            return set()
        seen.add(response_type)
    except TypeError:
        # Unhashable annotation metadata
        return set()

    annotations: dict[str, Any] = {}
    if isinstance(response_type, type) and issubclass(response_type, BaseModel):
        for name, info in response_type.model_fields.items():
            annotations[info.alias or name] = info.annotation
    elif isinstance(response_type, type) and dataclasses.is_dataclass(response_type):
        try:
            hints = typing.get_type_hints(response_type)
        except (NameError, TypeError):
            hints = {}
        annotations = {f.name: hints.get(f.name, Any) for f in dataclasses.fields(response_type)}

    names: set[str] = set()
    for name, annotation in annotations.items():
        for candidate in _flatten(annotation):
            if typing.get_origin(candidate) in (list, set, frozenset, tuple):
                names.add(name)
                for arg in typing.get_args(candidate):
                    names |= _sequence_fields(arg, seen)
            else:
                names |= _sequence_fields(candidate, seen)
    return names


def _flatten(annotation: Any) -> list[Any]:
    if typing.get_args(annotation) and typing.get_origin(annotation) not in (
        list, set, frozenset, tuple, dict,
    ):
        flat: list[Any] = []
        for arg in typing.get_args(annotation):
            flat.extend(_flatten(arg))
        return flat
    return [annotation]


def _decode_json(
    body: str,
    response_type: Any,
    naming_strategy: NamingStrategy,
    null_value_handling: NullValueHandling,
) -> Any:
    try:
        parsed = json.loads(body)
        data = prepare_incoming(parsed, response_type, naming_strategy, null_value_handling)
    except ValueError as e:
        raise DecodeError(f"Invalid JSON body: {e}") from e
    except RecursionError as e:
        raise DecodeError("JSON body is nested too deeply") from e
    return _validate(response_type, data)


def _decode_xml(body: str, response_type: Any) -> Any:
    try:
        _, content = parse_xml(body.encode("utf-8"), _sequence_fields(response_type))
    except ET.ParseError as e:
        raise DecodeError(f"Invalid XML body: {e}") from e
    except RecursionError as e:
        raise DecodeError("XML body is nested too deeply") from e
    return _validate(response_type, content)


def decode_body(
    headers: Mapping[str, str] | None,
    body: str | None,
    response_type: Any,
    naming_strategy: NamingStrategy = NamingStrategy.CAMEL_CASE,
    null_value_handling: NullValueHandling = NullValueHandling.INCLUDE,
) -> Any:
    """Decode *body* into *response_type* based on the response Content-Type.

    Only JSON and XML bodies are decoded. Naming strategy and null handling
    apply to JSON only.

    Raises:
        UnsupportedContentError: If the body is empty or the Content-Type is
            missing or not JSON/XML. No decode is attempted.
        DecodeError: If the body is malformed or does not fit the type.
    """
    if not body:
        raise UnsupportedContentError("Empty body")
    content_type = _content_type(headers).lower()
    if not content_type:
        raise UnsupportedContentError("No Content-Type header")

    if JSON_CONTENT_TYPE in content_type:
        return _decode_json(body, response_type, naming_strategy, null_value_handling)
    if XML_CONTENT_TYPE in content_type:
        return _decode_xml(body, response_type)
    raise UnsupportedContentError(f"Content-Type {content_type!r} is not decodable")


def try_decode(
    headers: Mapping[str, str] | None,
    body: str | None,
    response_type: Any,
    naming_strategy: NamingStrategy = NamingStrategy.CAMEL_CASE,
    null_value_handling: NullValueHandling = NullValueHandling.INCLUDE,
) -> Any:
    """Best-effort decode. Returns ABSENT instead of raising DecodeError."""
    try:
        return decode_body(headers, body, response_type, naming_strategy, null_value_handling)
    except UnsupportedContentError as e:
        logger.debug("Response body not decoded: %s", e)
    except DecodeError as e:
        logger.debug("Response body could not be decoded into %r: %s", response_type, e)
    return ABSENT
