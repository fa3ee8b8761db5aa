"""Asynchronous XML-RPC client: request ids, pending transfers, completion events.

Every id returned by ``submit`` gets exactly one terminal event, ``done`` or
``failed``, as long as the transport eventually reports each transfer it accepted.
"""

import asyncio
import itertools
import logging
import threading
import time
from collections.abc import Hashable, Iterable
from dataclasses import dataclass
from typing import Protocol

from mb_xmlrpc.config import ClientConfig
from mb_xmlrpc.errors import DecodeError, Fault
from mb_xmlrpc.protocol import Request, decode_response, encode_request
from mb_xmlrpc.transport import HttpxTransport, Transport
from mb_xmlrpc.value import Value, pformat

logger = logging.getLogger(__name__)

# Fault codes for failures that did not come from the server's own fault response
TRANSPORT_ERROR_CODE = -32300
INVALID_RESPONSE_CODE = -32600
INVALID_RESPONSE_MESSAGE = "Server error: Invalid xml-rpc response"


class ClientListener(Protocol):
    """Receiver of terminal request events."""

    def done(self, request_id: int, value: Value) -> None: ...

    def failed(self, request_id: int, fault_code: int, fault_string: str) -> None: ...


@dataclass(frozen=True, slots=True)
class PendingRequest:
    """A submitted request waiting for its transfer to finish."""

    request_id: int
    method_name: str
    handle: Hashable
    submitted_at: float


class XmlRpcClient:
    """Submits method calls through a transport and correlates the outcomes.

    The pending table is guarded by one lock: ``submit`` inserts under it, and the
    first notification for a handle removes the entry under it. Later notifications
    for the same handle find nothing and emit nothing. Listeners are invoked outside
    the lock.
    """

    def __init__(self, cfg: ClientConfig, transport: Transport) -> None:
        """Initialize the client and attach it to the transport.

        Args:
            cfg: Target server configuration (URL, credentials, user agent).
            transport: HTTP capability that reports back to this client.

        """
        self._cfg = cfg
        self._transport = transport
        self._lock = threading.Lock()
        # Marks the thread currently inside transport.send while it holds the lock
        self._local = threading.local()
        self._ids = itertools.count(1)
        self._pending: dict[Hashable, PendingRequest] = {}
        self._listeners: list[ClientListener] = []
        transport.attach(self)

    def add_listener(self, listener: ClientListener) -> None:
        """Register a receiver of done/failed events."""
        self._listeners.append(listener)

    def remove_listener(self, listener: ClientListener) -> None:
        """Unregister a receiver, if registered."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def pending_count(self) -> int:
        """Number of requests awaiting their transfer."""
        with self._lock:
            return len(self._pending)

    def submit(self, method_name: str, params: Iterable[Value] = ()) -> int:
        """Encode and send a method call. Return its request id without waiting.

        Raises:
            InvalidMethodNameError: Empty method name; nothing is sent or registered.
            InvalidCharacterError: Text the XML document cannot carry; nothing is sent or registered.
            RuntimeError: The transport reused a handle or notified the client from inside send.

        """
        body = encode_request(Request(method_name=method_name, params=tuple(params)))
        headers = self._headers(len(body))
        with self._lock:
            request_id = next(self._ids)
            self._local.in_send = True
            try:
                handle = self._transport.send(self._cfg.url, headers, body)
            finally:
                self._local.in_send = False
            if handle in self._pending:
                msg = f"Transport reused handle {handle!r} of an in-flight request."
                raise RuntimeError(msg)
            self._pending[handle] = PendingRequest(request_id, method_name, handle, time.monotonic())
        logger.debug("Request %d (%s) submitted as transfer %r", request_id, method_name, handle)
        return request_id

    # --- Transport notifications ---

    def on_transport_failure(self, handle: Hashable, description: str) -> None:
        """Fail the request behind a transfer that broke below the protocol layer."""
        pending = self._take(handle)
        if pending is None:
            return
        logger.info("Request %d (%s) transport failure: %s", pending.request_id, pending.method_name, description)
        self._emit_failed(pending.request_id, TRANSPORT_ERROR_CODE, description)

    def on_transport_success(self, handle: Hashable, body: bytes) -> None:
        """Decode the response body of a finished transfer and emit the outcome."""
        pending = self._take(handle)
        if pending is None:
            return
        elapsed = time.monotonic() - pending.submitted_at
        try:
            response = decode_response(body)
        except DecodeError as e:
            logger.warning("Request %d (%s) got an invalid response: %s", pending.request_id, pending.method_name, e)
            self._emit_failed(pending.request_id, INVALID_RESPONSE_CODE, INVALID_RESPONSE_MESSAGE)
            return
        except Exception:
            # The entry is already taken, so the request must still end in an event
            logger.exception("Request %d (%s) response could not be decoded", pending.request_id, pending.method_name)
            self._emit_failed(pending.request_id, INVALID_RESPONSE_CODE, INVALID_RESPONSE_MESSAGE)
            return

        if response.value is None:
            fault_code = response.fault_code if response.fault_code is not None else 0
            logger.info("Request %d (%s) fault %d: %s", pending.request_id, pending.method_name, fault_code, response.fault_string)
            self._emit_failed(pending.request_id, fault_code, response.fault_string)
            return

        logger.debug("Request %d (%s) done in %.3fs", pending.request_id, pending.method_name, elapsed)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Request %d result: %s", pending.request_id, pformat(response.value))
        self._emit_done(pending.request_id, response.value)

    # --- Private helpers ---

    def _headers(self, content_length: int) -> dict[str, str]:
        headers = {
            "Content-Type": "text/xml",
            "Content-Length": str(content_length),
            "User-Agent": self._cfg.user_agent,
        }
        if self._cfg.authorization is not None:
            headers["Authorization"] = self._cfg.authorization
        return headers

    def _take(self, handle: Hashable) -> PendingRequest | None:
        """Remove and return the pending request for a handle; None for unknown or already finished handles."""
        if getattr(self._local, "in_send", False):
            # Taking the lock here would deadlock: submit holds it across send
            msg = "Transport notified the client from inside send(); notifications must be delivered later."
            raise RuntimeError(msg)
        with self._lock:
            return self._pending.pop(handle, None)

    def _emit_done(self, request_id: int, value: Value) -> None:
        for listener in list(self._listeners):
            try:
                listener.done(request_id, value)
            except Exception:
                logger.exception("Listener failed handling done(%d)", request_id)

    def _emit_failed(self, request_id: int, fault_code: int, fault_string: str) -> None:
        for listener in list(self._listeners):
            try:
                listener.failed(request_id, fault_code, fault_string)
            except Exception:
                logger.exception("Listener failed handling failed(%d)", request_id)


class FutureListener:
    """Turns done/failed events into one asyncio future per request id.

    Must be created inside the event loop that awaits the results. Events may
    arrive from any thread and before or after ``wait`` is called.
    """

    def __init__(self) -> None:
        """Bind the listener to the running event loop."""
        self._loop = asyncio.get_running_loop()
        self._futures: dict[int, asyncio.Future[Value]] = {}

    def done(self, request_id: int, value: Value) -> None:
        """Resolve the request's future with its value."""
        self._loop.call_soon_threadsafe(self._resolve, request_id, value, None)

    def failed(self, request_id: int, fault_code: int, fault_string: str) -> None:
        """Resolve the request's future with a Fault."""
        self._loop.call_soon_threadsafe(self._resolve, request_id, None, Fault(fault_code, fault_string))

    async def wait(self, request_id: int) -> Value:
        """Wait for a request's outcome.

        Raises:
            Fault: The request failed.

        """
        try:
            return await self._future(request_id)
        finally:
            self._futures.pop(request_id, None)

    def _future(self, request_id: int) -> asyncio.Future[Value]:
        future = self._futures.get(request_id)
        if future is None:
            future = self._loop.create_future()
            self._futures[request_id] = future
        return future

    def _resolve(self, request_id: int, value: Value | None, fault: Fault | None) -> None:
        future = self._future(request_id)
        if future.done():
            return
        if fault is not None:
            future.set_exception(fault)
        elif value is not None:
            future.set_result(value)


async def call_once(cfg: ClientConfig, method_name: str, params: Iterable[Value] = ()) -> Value:
    """Run a single method call over HTTP and return its result.

    Raises:
        InvalidMethodNameError: Empty method name.
        InvalidCharacterError: Text the XML document cannot carry.
        Fault: Server fault, transport failure, or invalid response.

    """
    transport = HttpxTransport.from_config(cfg)
    try:
        client = XmlRpcClient(cfg, transport)
        waiter = FutureListener()
        client.add_listener(waiter)
        request_id = client.submit(method_name, params)
        return await waiter.wait(request_id)
    finally:
        await transport.wait_idle()
        await transport.aclose()
