"""Dispatcher - Executes request descriptors over one shared httpx client.

The shared transport is configured once per process. Its default timeout,
connection limit and lease timeout never change afterwards; a per-call
deadline only ever narrows the default for that one call.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import weakref
from datetime import timedelta

import httpx

from onehttp.log import log_request_finished, log_request_starting
from onehttp.models import HttpRequest, Response, TransportSettings

logger = logging.getLogger(__name__)


class DispatchError(Exception):
    """Base class for dispatcher errors."""


class RequestTimeoutError(DispatchError, TimeoutError):
    """Raised when the deadline elapses before the response body is read."""

    def __init__(self, elapsed_ms: float, deadline_seconds: float | None = None) -> None:
        self.elapsed_ms = elapsed_ms
        self.deadline_seconds = deadline_seconds
        super().__init__(f"The operation has timed out after {elapsed_ms:.0f} ms.")


def effective_timeout(default: float, per_call: float | None) -> float:
    """Deadline for one call: the per-call timeout only if it is set and shorter."""
    if per_call is not None and 0 < per_call < default:
        return per_call
    return default


# =============================================================================
# Shared transport
# =============================================================================


class SharedTransport:
    """Owns the long-lived httpx.AsyncClient and its process-wide settings.

    configure() is the only way to initialize it and only the first call has
    any effect. Connections are pooled by httpx; the lease bookkeeping here
    decides when a pooled connection to an origin must be dropped so the
    host name is resolved again.

    Pooled connections belong to the event loop that opened them. When a
    request arrives on a different loop, a client built by configure() is
    replaced by a fresh one with the same settings. A caller-supplied client
    cannot be rebuilt, so that case raises DispatchError instead.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._settings: TransportSettings | None = None
        self._client: httpx.AsyncClient | None = None
        self._owns_client = False
        self._loop_ref: weakref.ref[asyncio.AbstractEventLoop] | None = None
        self._lease_started: dict[tuple[str, str, int | None], float] = {}

    def configure(
        self,
        settings: TransportSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> bool:
        """Initialize the transport once.

        Args:
            settings: Process-wide settings. Defaults are used when omitted.
            client: Pre-built client, mainly for tests. When omitted a client
                is built from settings.

        Returns:
            True if this call initialized the transport, False if it was
            already configured (nothing is changed in that case).
        """
        with self._lock:
            if self._settings is not None:
                return False
            settings = settings or TransportSettings()
            self._owns_client = client is None
            self._settings = settings
            self._client = client if client is not None else _build_client(settings)
            logger.debug(
                "Shared transport configured: timeout=%ss lease=%s limit=%d",
                settings.request_timeout,
                settings.connection_lease_timeout,
                settings.connection_limit,
            )
            return True

    @property
    def is_configured(self) -> bool:
        return self._settings is not None

    @property
    def settings(self) -> TransportSettings:
        if self._settings is None:
            raise DispatchError("Shared transport is not configured")
        return self._settings

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise DispatchError("Shared transport is not configured")
        return self._client

    def client_for_running_loop(self) -> httpx.AsyncClient:
        """Return the client to use on the running event loop.

        Raises:
            DispatchError: If the transport is not configured, or its
                caller-supplied client was first used on another loop.
        """
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._client is None or self._settings is None:
                raise DispatchError("Shared transport is not configured")
            bound = self._loop_ref() if self._loop_ref is not None else None
            if self._loop_ref is not None and bound is not loop:
                if not self._owns_client:
                    raise DispatchError(
                        "Shared transport client is bound to another event loop"
                    )
                logger.debug("New event loop detected; rebuilding the shared client")
                # The old pool cannot be closed from here; its loop is gone or busy
                self._client = _build_client(self._settings)
                self._lease_started.clear()
            self._loop_ref = weakref.ref(loop)
            return self._client

    def refresh_lease(self, url: str | httpx.URL) -> bool:
        """Track the connection lease for the origin of *url*.

        Returns:
            True when the lease has expired and the request should carry
            ``Connection: close``. The lease restarts at that point.
        """
        lease = self.settings.connection_lease_timeout
        if lease is None:
            return False
        parsed = httpx.URL(url)
        origin = (parsed.scheme, parsed.host, parsed.port)
        now = time.monotonic()
        with self._lock:
            started = self._lease_started.get(origin)
            if started is None:
                self._lease_started[origin] = now
                return lease == 0
            if now - started >= lease:
                self._lease_started[origin] = now
                return True
        return False

    async def aclose(self) -> None:
        """Close the underlying client. It is not recreated afterwards."""
        if self._client is not None:
            await self._client.aclose()


def _build_client(settings: TransportSettings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=settings.request_timeout,
        limits=httpx.Limits(
            max_connections=settings.connection_limit,
            max_keepalive_connections=settings.connection_limit,
        ),
        follow_redirects=settings.follow_redirects,
    )


_shared_transport = SharedTransport()


def get_shared_transport() -> SharedTransport:
    """Return the process-wide transport."""
    return _shared_transport


# =============================================================================
# Dispatcher
# =============================================================================


def _convert_response(response: httpx.Response, elapsed: timedelta) -> Response:
    # Lowercase keys; repeated headers joined in arrival order
    headers: dict[str, str] = {}
    for key, value in response.headers.multi_items():
        key_lower = key.lower()
        headers[key_lower] = f"{headers[key_lower]},{value}" if key_lower in headers else value

    return Response(
        status_code=response.status_code,
        headers=headers,
        response_body=response.text,
        elapsed_time=elapsed,
    )


class Dispatcher:
    """Sends HttpRequest descriptors and captures untyped Responses."""

    def __init__(
        self,
        transport: SharedTransport,
        logger: logging.Logger | None = None,
    ) -> None:
        self._transport = transport
        self._logger = logger or logging.getLogger(__name__)

    @property
    def transport(self) -> SharedTransport:
        return self._transport

    async def send(self, request: HttpRequest, timeout_seconds: float = 0) -> Response:
        """Execute one request and read the whole body.

        Args:
            request: Descriptor from build_request.
            timeout_seconds: Per-call deadline. Ignored unless it is greater
                than zero and shorter than the configured default.

        Returns:
            Response with status, merged headers, body text and elapsed time.

        Raises:
            RequestTimeoutError: If the deadline elapses first.
            httpx.HTTPError: Connection and protocol failures, unwrapped.
        """
        settings = self._transport.settings
        client = self._transport.client_for_running_loop()
        deadline = effective_timeout(settings.request_timeout, timeout_seconds)

        headers = request.wire_headers()
        if self._transport.refresh_lease(request.url):
            headers.append(("Connection", "close"))

        log_request_starting(self._logger, request.method.value, request.url)

        start_time = time.perf_counter()
        try:
            http_response = await asyncio.wait_for(
                client.request(
                    request.method.value,
                    request.url,
                    headers=headers,
                    content=request.content,
                ),
                timeout=deadline,
            )
        except (TimeoutError, httpx.TimeoutException) as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            raise RequestTimeoutError(elapsed_ms, deadline) from e
        elapsed = timedelta(seconds=time.perf_counter() - start_time)

        response = _convert_response(http_response, elapsed)
        log_request_finished(self._logger, elapsed, response.status_code)
        return response
