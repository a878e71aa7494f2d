"""JSON-RPC request/response correlation over one persistent socket.

States: closed -> opening -> open -> closed. Socket errors do not change the
state by themselves but reject all outstanding work.

Events emitted:
    traffic (direction, data, handle): every envelope sent or received
    message (data): responses, and id-less messages without params
    notification (data): id-less messages with params (server pushes)
    closed (CloseEvent): the socket closed
    socket-error (error): a socket error after the socket was opened
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable

from enigma.error import ConnectivityError, ErrorCode
from enigma.events import EventEmitter
from enigma.rpc_resolver import CLOSED, OPENED, ResolverRegistry
from enigma.websocket import CloseEvent, ReadyState, Socket, SocketFactory

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
RPC_CLOSE_NORMAL = 1000

SESSION_CREATED = "SESSION_CREATED"
SESSION_ATTACHED = "SESSION_ATTACHED"
ON_CONNECTED = "OnConnected"


def _failed(error: BaseException) -> asyncio.Future[Any]:
    future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
    future.set_exception(error)
    return future


class RPC(EventEmitter):
    """Owns one socket at a time and correlates requests with responses.

    Request ids increase monotonically for the lifetime of the instance, also
    across reopens. Responses are matched to callers by id only, so the server
    may answer in any order.
    """

    def __init__(self, url: str, create_socket: SocketFactory) -> None:
        """Initialize the transport.

        Args:
            url: The websocket URL handed to ``create_socket``
            create_socket: Factory returning a callback-style socket
        """
        super().__init__()
        self.url = url
        self.create_socket = create_socket
        self.socket: Socket | None = None
        self.resolvers = ResolverRegistry()
        self.request_id = 0
        self._opened: asyncio.Future[Any] | None = None
        self._closed: asyncio.Future[Any] | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def open(self, force: bool = False) -> asyncio.Future[Callable[[], asyncio.Future[Any]]]:
        """Open the socket.

        Args:
            force: Ignore any previous or in-flight open and create a new socket

        Returns:
            A future resolving, once the socket is open, to a callable that
            returns the future of the eventual close event
        """
        if not force and self._opened is not None:
            return self._opened

        try:
            socket = self.create_socket(self.url)
        except Exception as e:
            logger.debug("Socket factory failed for %s: %s", self.url, e)
            return _failed(e)

        self.socket = socket
        socket.on_open = self._on_open
        socket.on_close = self._on_close
        socket.on_error = self._on_error
        socket.on_message = self._on_message
        self._opened = self.resolvers.register(OPENED)
        self._closed = self.resolvers.register(CLOSED)
        return self._opened

    async def reopen(self, timeout: float) -> str:
        """Reopen the socket and learn whether the server kept our session.

        Args:
            timeout: Seconds to wait for the ``OnConnected`` notification

        Returns:
            The ``qSessionState`` of the notification, or ``SESSION_CREATED``
            when no notification arrived in time
        """
        loop = asyncio.get_running_loop()
        notification: asyncio.Future[str] = loop.create_future()

        def on_notification(data: dict[str, Any]) -> None:
            if data.get("method") != ON_CONNECTED or notification.done():
                return
            notification.set_result(data["params"].get("qSessionState", SESSION_CREATED))

        self.on("notification", on_notification)
        try:
            await self.open(force=True)
            try:
                return await asyncio.wait_for(asyncio.shield(notification), timeout)
            except asyncio.TimeoutError:
                return SESSION_CREATED
        finally:
            self.remove_listener("notification", on_notification)

    def close(self, code: int = RPC_CLOSE_NORMAL, reason: str = "") -> asyncio.Future[Any]:
        """Close the socket.

        Returns:
            The future of the close event
        """
        socket = self.socket
        self.socket = None
        self._opened = None
        if self._closed is None:
            future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
            future.set_result(CloseEvent(code, reason))
            return future
        if socket is not None and socket.ready_state != ReadyState.CLOSED:
            socket.close(code, reason)
            return self._closed
        # nothing left to close, settle the close future ourselves
        event = CloseEvent(code, reason)
        resolver = self.resolvers.get(CLOSED)
        if resolver is not None:
            resolver.resolve_with(event)
            return self._closed
        future = asyncio.get_running_loop().create_future()
        future.set_result(event)
        return future

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    def create_request_id(self) -> int:
        self.request_id += 1
        return self.request_id

    def send(self, data: dict[str, Any]) -> asyncio.Future[dict[str, Any]]:
        """Send an envelope and return the future of its response envelope.

        An ``id`` is assigned when missing. The future fails with a
        ConnectivityError right away when the socket is not open.
        """
        socket = self.socket
        if socket is None or socket.ready_state != ReadyState.OPEN:
            return _failed(ConnectivityError("Not connected", ErrorCode.NOT_CONNECTED))

        if data.get("id") is None:
            data["id"] = self.create_request_id()
        data["jsonrpc"] = JSONRPC_VERSION

        future = self.resolvers.register(data["id"], data.get("handle"))
        try:
            socket.send(json.dumps(data))
        except Exception as e:
            self.resolvers.unregister(data["id"])
            future.cancel()
            logger.debug("Failed to send %s: %s", data, e)
            return _failed(ConnectivityError(f"Send failed: {e}", ErrorCode.NOT_CONNECTED, event=e))
        logger.debug("Sent %s", data)
        self.emit("traffic", "sent", data, data.get("handle"))
        return future

    # -------------------------------------------------------------------------
    # Socket callbacks
    # -------------------------------------------------------------------------

    def _on_open(self) -> None:
        logger.info("Socket opened to %s", self.url)
        resolver = self.resolvers.get(OPENED)
        if resolver is not None:
            closed = self._closed
            resolver.resolve_with(lambda: closed)

    def _on_close(self, event: CloseEvent) -> None:
        logger.info("Socket to %s closed (code=%s)", self.url, getattr(event, "code", None))
        self.emit("closed", event)
        opened = self.resolvers.get(OPENED)
        if opened is not None:
            opened.reject_with(
                ConnectivityError("Socket closed before it opened", ErrorCode.NOT_CONNECTED, event=event)
            )
        resolver = self.resolvers.get(CLOSED)
        if resolver is not None:
            resolver.resolve_with(event)
        self.resolvers.reject_all_outstanding(
            ConnectivityError("Socket closed", ErrorCode.NOT_CONNECTED, event=event)
        )

    def _on_error(self, event: Any) -> None:
        logger.debug("Socket error on %s: %s", self.url, event)
        opened = self.resolvers.get(OPENED)
        if opened is not None:
            opened.reject_with(
                ConnectivityError(f"Socket error: {event}", ErrorCode.NOT_CONNECTED, event=event)
            )
        else:
            # only runtime errors are emitted, errors while opening reject open()
            self.emit("socket-error", event)
        self.resolvers.reject_all_outstanding(
            ConnectivityError("Socket error", ErrorCode.NOT_CONNECTED, event=event)
        )

    def _on_message(self, text: str) -> None:
        data = json.loads(text)
        resolver = self.resolvers.get(data.get("id")) if data.get("id") is not None else None
        logger.debug("Received %s", data)
        self.emit("traffic", "received", data, resolver.handle if resolver else None)

        if data.get("id") is not None:
            self.emit("message", data)
            if resolver is None:
                logger.warning("Response for unknown request id %r", data["id"])
                return
            resolver.resolve_with(data)
        else:
            self.emit("notification" if "params" in data else "message", data)
