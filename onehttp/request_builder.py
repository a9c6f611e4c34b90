"""Request builder - Assembles request descriptors without any network I/O.

The body is encoded first so its Content-Type is known before caller headers
are applied. A Content-Type chosen by the codec always wins over one supplied
by the caller.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Union

import httpx

from onehttp.codec import encode
from onehttp.models import HttpMethod, HttpRequest, RequestOptions

HeaderInput = Union[Mapping[str, str], Iterable[tuple[str, str]]]

# Headers that describe the body rather than the request. They travel with the
# content, so a caller can set them even when the codec picks the media type.
CONTENT_HEADER_NAMES = frozenset({
    "allow",
    "content-disposition",
    "content-encoding",
    "content-language",
    "content-location",
    "content-md5",
    "content-range",
    "content-type",
    "expires",
    "last-modified",
})


class RequestBuildError(ValueError):
    """Raised when a request descriptor cannot be built (bad URL or method)."""


def _sanitize_header_value(value: str) -> str:
    """Replace non-ASCII characters with '?'. Header values must be ASCII (RFC 7230)."""
    return value.encode("ascii", errors="replace").decode("ascii")


def coerce_method(method: HttpMethod | str) -> HttpMethod:
    """Accept an HttpMethod or its name in any case."""
    if isinstance(method, HttpMethod):
        return method
    try:
        return HttpMethod(str(method).upper())
    except ValueError as e:
        raise RequestBuildError(f"Unsupported HTTP method '{method}'") from e


def _check_url(url: str) -> str:
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as e:
        raise RequestBuildError(f"Invalid URL '{url}': {e}") from e
    if not parsed.is_absolute_url or parsed.scheme not in ("http", "https") or not parsed.host:
        raise RequestBuildError(f"URL must be an absolute http(s) URL, got '{url}'")
    return str(url)


def iter_headers(headers: HeaderInput | None) -> list[tuple[str, str]]:
    """Normalize a mapping or an iterable of pairs into a list of pairs."""
    if not headers:
        return []
    items = headers.items() if isinstance(headers, Mapping) else headers
    pairs: list[tuple[str, str]] = []
    for name, value in items:
        if name is None:
            continue
        pairs.append((str(name).strip(), "" if value is None else str(value)))
    return pairs


def build_request(
    method: HttpMethod | str,
    url: str,
    data: Any = None,
    headers: HeaderInput | None = None,
    options: RequestOptions | None = None,
) -> HttpRequest:
    """Build a request descriptor.

    Args:
        method: HTTP method.
        url: Absolute target URL.
        data: Body value, encoded according to ``options.media_type``. None
            means no body.
        headers: Caller headers. Repeated names are kept in order.
        options: Request options; defaults are used when omitted.

    Returns:
        HttpRequest ready for the dispatcher.

    Raises:
        RequestBuildError: If the method or URL is invalid.
        EncodingError: If data cannot be encoded for the media type.
    """
    options = options or RequestOptions()
    http_method = coerce_method(method)
    target = _check_url(url)

    body = encode(data, options)
    codec_content_type = body.content_type if body is not None else None

    request_headers: list[tuple[str, str]] = []
    content_headers: list[tuple[str, str]] = []
    content_type = codec_content_type

    for name, value in iter_headers(headers):
        if not name:
            continue
        value = _sanitize_header_value(value)
        lower = name.lower()
        if lower == "content-length":
            # Computed by the transport from the encoded body
            continue
        if lower == "content-type":
            if codec_content_type is not None:
                # Codec precedence: the caller's value is discarded
                continue
            if content_type is None:
                content_type = value
            else:
                content_type = f"{content_type},{value}"
        elif lower in CONTENT_HEADER_NAMES:
            content_headers.append((name, value))
        else:
            request_headers.append((name, value))

    return HttpRequest(
        method=http_method,
        url=target,
        content=body.content if body is not None else None,
        content_type=content_type,
        headers=request_headers,
        content_headers=content_headers,
    )
