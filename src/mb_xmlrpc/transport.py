"""HTTP transport capability and its httpx implementation.

The client only needs to POST a body and later hear, per transfer handle,
either the full response body or a failure description.
"""

import asyncio
import itertools
import logging
from collections.abc import Hashable, Mapping
from typing import Protocol

import httpx

from mb_xmlrpc.config import ClientConfig

logger = logging.getLogger(__name__)


class TransportSink(Protocol):
    """Receiver of transfer outcomes. Exactly one call per handle is expected, extras must be tolerated."""

    def on_transport_success(self, handle: Hashable, body: bytes) -> None: ...

    def on_transport_failure(self, handle: Hashable, description: str) -> None: ...


class Transport(Protocol):
    """Asynchronous HTTP POST capability.

    ``send`` returns a handle immediately. Outcomes are reported to the attached
    sink later, never from inside ``send`` itself.
    """

    def attach(self, sink: TransportSink) -> None: ...

    def send(self, url: str, headers: Mapping[str, str], body: bytes) -> Hashable: ...


class HttpxTransport:
    """Transport that runs each POST as a task on the running asyncio loop."""

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        proxy: str | None = None,
        verify: bool = True,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            timeout: Per-transfer timeout in seconds.
            proxy: Optional proxy URL.
            verify: Verify server TLS certificates.
            http_client: Preconfigured client to use instead of building one (not closed by aclose).

        """
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout, proxy=proxy, verify=verify)
        self._sink: TransportSink | None = None
        self._handles = itertools.count(1)
        # Strong references to in-flight transfers to prevent GC
        self._tasks: set[asyncio.Task[None]] = set()

    @staticmethod
    def from_config(cfg: ClientConfig) -> "HttpxTransport":
        """Build a transport from client configuration."""
        return HttpxTransport(timeout=cfg.timeout, proxy=cfg.proxy, verify=cfg.verify_tls)

    def attach(self, sink: TransportSink) -> None:
        """Set the receiver of transfer outcomes."""
        self._sink = sink

    def send(self, url: str, headers: Mapping[str, str], body: bytes) -> int:
        """Schedule a POST and return its handle.

        Raises:
            RuntimeError: No sink attached, or called outside a running event loop.

        """
        if self._sink is None:
            msg = "Transport has no sink attached."
            raise RuntimeError(msg)
        loop = asyncio.get_running_loop()
        handle = next(self._handles)
        task = loop.create_task(self._post(self._sink, handle, url, dict(headers), body))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return handle

    @property
    def in_flight(self) -> int:
        """Number of transfers not yet reported."""
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every scheduled transfer has been reported."""
        while self._tasks:
            await asyncio.wait(set(self._tasks))

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this transport created it."""
        if self._owns_client:
            await self._http.aclose()

    async def _post(self, sink: TransportSink, handle: int, url: str, headers: dict[str, str], body: bytes) -> None:
        try:
            response = await self._http.post(url, content=body, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            description = str(e) or type(e).__name__
            logger.debug("Transfer %d failed: %s", handle, description)
            sink.on_transport_failure(handle, description)
            return
        logger.debug("Transfer %d finished: %d bytes", handle, len(response.content))
        sink.on_transport_success(handle, response.content)
