"""onehttp - A single shared-transport HTTP service with typed, best-effort response decoding."""

from __future__ import annotations

import logging

from onehttp.codec import (
    CodecError,
    DecodeError,
    EncodingError,
    UnsupportedContentError,
    decode_body,
    encode,
    try_decode,
)
from onehttp.config_loader import ConfigError, load_transport_settings
from onehttp.dispatcher import (
    Dispatcher,
    DispatchError,
    RequestTimeoutError,
    SharedTransport,
    effective_timeout,
    get_shared_transport,
)
from onehttp.models import (
    ABSENT,
    HttpMethod,
    HttpRequest,
    MediaType,
    NamingStrategy,
    NullValueHandling,
    RequestOptions,
    Response,
    TransportSettings,
    TypedResponse,
)
from onehttp.request_builder import RequestBuildError, build_request
from onehttp.service import HttpService

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ABSENT",
    "CodecError",
    "ConfigError",
    "DecodeError",
    "DispatchError",
    "Dispatcher",
    "EncodingError",
    "HttpMethod",
    "HttpRequest",
    "HttpService",
    "MediaType",
    "NamingStrategy",
    "NullValueHandling",
    "RequestBuildError",
    "RequestOptions",
    "RequestTimeoutError",
    "Response",
    "SharedTransport",
    "TransportSettings",
    "TypedResponse",
    "UnsupportedContentError",
    "build_request",
    "decode_body",
    "effective_timeout",
    "encode",
    "get_shared_transport",
    "load_transport_settings",
    "try_decode",
]
