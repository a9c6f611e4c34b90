"""HttpService - The public entry point for sending requests.

Every call goes through the same path: build the request descriptor, send it
through the shared transport, and for the typed variants attempt a
best-effort decode of the captured body.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from onehttp.dispatcher import Dispatcher, SharedTransport, get_shared_transport
from onehttp.models import (
    HttpMethod,
    RequestOptions,
    Response,
    TransportSettings,
    TypedResponse,
)
from onehttp.request_builder import HeaderInput, build_request

T = TypeVar("T")


class HttpService:
    """Send HTTP requests over a process-wide shared transport.

    The first service (or explicit SharedTransport.configure call) fixes the
    transport settings for the whole process; later settings are ignored.

    Example:
        async with HttpService() as http:
            response = await http.get_as(User, "https://api.example.com/users/1")
            if response.has_data:
                print(response.response_data.name)
    """

    def __init__(
        self,
        settings: TransportSettings | None = None,
        *,
        transport: SharedTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._transport = transport if transport is not None else get_shared_transport()
        self._transport.configure(settings)
        self._dispatcher = Dispatcher(self._transport, logger=logger)

    @property
    def transport(self) -> SharedTransport:
        return self._transport

    @property
    def settings(self) -> TransportSettings:
        """Settings in effect, which may differ from the ones passed in."""
        return self._transport.settings

    async def __aenter__(self) -> HttpService:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        # The transport outlives any one service
        return None

    # =========================================================================
    # Core operations
    # =========================================================================

    async def send(
        self,
        method: HttpMethod | str,
        url: str,
        data: Any = None,
        headers: HeaderInput | None = None,
        options: RequestOptions | None = None,
    ) -> Response:
        """Send a request and return the raw response. No decode is attempted.

        Raises:
            RequestBuildError: If the method or URL is invalid.
            EncodingError: If data cannot be encoded for the media type.
            RequestTimeoutError: If the effective deadline elapses.
            httpx.HTTPError: Transport failures, unwrapped.
        """
        options = options or RequestOptions()
        request = build_request(method, url, data, headers, options)
        return await self._dispatcher.send(request, options.timeout_seconds)

    async def send_as(
        self,
        response_type: type[T] | Any,
        method: HttpMethod | str,
        url: str,
        data: Any = None,
        headers: HeaderInput | None = None,
        options: RequestOptions | None = None,
    ) -> TypedResponse[T]:
        """Send a request and try to decode the body into *response_type*.

        A body that cannot be decoded leaves ``response_data`` as ABSENT; it
        never fails the call. Errors are otherwise the same as send().
        """
        options = options or RequestOptions()
        response = await self.send(method, url, data, headers, options)
        return TypedResponse.from_response(
            response, response_type, options.naming_strategy, options.null_value_handling
        )

    # =========================================================================
    # Verb helpers
    # =========================================================================

    async def get(self, url: str, headers: HeaderInput | None = None,
                  options: RequestOptions | None = None) -> Response:
        return await self.send(HttpMethod.GET, url, None, headers, options)

    async def get_as(self, response_type: type[T] | Any, url: str,
                     headers: HeaderInput | None = None,
                     options: RequestOptions | None = None) -> TypedResponse[T]:
        return await self.send_as(response_type, HttpMethod.GET, url, None, headers, options)

    async def post(self, url: str, data: Any = None, headers: HeaderInput | None = None,
                   options: RequestOptions | None = None) -> Response:
        return await self.send(HttpMethod.POST, url, data, headers, options)

    async def post_as(self, response_type: type[T] | Any, url: str, data: Any = None,
                      headers: HeaderInput | None = None,
                      options: RequestOptions | None = None) -> TypedResponse[T]:
        return await self.send_as(response_type, HttpMethod.POST, url, data, headers, options)

    async def put(self, url: str, data: Any = None, headers: HeaderInput | None = None,
                  options: RequestOptions | None = None) -> Response:
        return await self.send(HttpMethod.PUT, url, data, headers, options)

    async def put_as(self, response_type: type[T] | Any, url: str, data: Any = None,
                     headers: HeaderInput | None = None,
                     options: RequestOptions | None = None) -> TypedResponse[T]:
        return await self.send_as(response_type, HttpMethod.PUT, url, data, headers, options)

    async def patch(self, url: str, data: Any = None, headers: HeaderInput | None = None,
                    options: RequestOptions | None = None) -> Response:
        return await self.send(HttpMethod.PATCH, url, data, headers, options)

    async def patch_as(self, response_type: type[T] | Any, url: str, data: Any = None,
                       headers: HeaderInput | None = None,
                       options: RequestOptions | None = None) -> TypedResponse[T]:
        return await self.send_as(response_type, HttpMethod.PATCH, url, data, headers, options)

    async def delete(self, url: str, headers: HeaderInput | None = None,
                     options: RequestOptions | None = None) -> Response:
        return await self.send(HttpMethod.DELETE, url, None, headers, options)

    async def delete_as(self, response_type: type[T] | Any, url: str,
                        headers: HeaderInput | None = None,
                        options: RequestOptions | None = None) -> TypedResponse[T]:
        return await self.send_as(response_type, HttpMethod.DELETE, url, None, headers, options)

    async def head(self, url: str, headers: HeaderInput | None = None,
                   options: RequestOptions | None = None) -> Response:
        return await self.send(HttpMethod.HEAD, url, None, headers, options)

    async def options(self, url: str, headers: HeaderInput | None = None,
                      options: RequestOptions | None = None) -> Response:
        return await self.send(HttpMethod.OPTIONS, url, None, headers, options)
