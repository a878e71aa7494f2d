"""Socket shape consumed by the RPC layer, plus the default aiohttp adapter.

The RPC layer never talks to a websocket library directly. It receives a
socket factory ``create_socket(url)`` whose result exposes four callback
attributes and a ready state, the same shape a browser WebSocket has:

```python
socket = create_socket("ws://localhost:9076/app/engineData")
socket.on_open = ...      # ()
socket.on_close = ...     # (CloseEvent)
socket.on_error = ...     # (error)
socket.on_message = ...   # (text)
socket.send(text)
socket.close(code, reason)
```

Authentication and TLS belong to the factory. With the default adapter, pass
them through ``functools.partial``:

```python
create_socket = functools.partial(AiohttpWebSocket, headers={"X-Qlik-User": "..."})
```
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Protocol

import aiohttp

logger = logging.getLogger(__name__)

# Close code used when the connection dropped without a close frame
ABNORMAL_CLOSURE = 1006


class ReadyState(IntEnum):
    CONNECTING = 0
    OPEN = 1
    CLOSING = 2
    CLOSED = 3


@dataclass(frozen=True, slots=True)
class CloseEvent:
    """Why a socket closed."""

    code: int
    reason: str = ""


class Socket(Protocol):
    """Interface the RPC layer expects from a socket factory result."""

    ready_state: int
    on_open: Callable[[], None] | None
    on_close: Callable[[CloseEvent], None] | None
    on_error: Callable[[Any], None] | None
    on_message: Callable[[str], None] | None

    def send(self, message: str) -> None:
        """Queue a text frame. Raises if the socket is not open."""
        ...

    def close(self, code: int = 1000, reason: str = "") -> None:
        """Start closing. ``on_close`` fires once the socket is closed."""
        ...


SocketFactory = Callable[[str], Socket]


class AiohttpWebSocket:
    """Callback-style websocket built on ``aiohttp.ClientSession.ws_connect``.

    Connecting starts as soon as the object is created, so it must be created
    inside a running event loop. A reader task turns aiohttp messages into
    callback invocations and a writer task keeps outbound frames in order.
    """

    def __init__(
        self,
        url: str,
        *,
        session: aiohttp.ClientSession | None = None,
        **connect_kwargs: Any,
    ) -> None:
        """Initialize and start connecting.

        Args:
            url: WebSocket URL (e.g., "ws://localhost:9076/app/engineData")
            session: Optional aiohttp session to connect with. A private one
                is created (and closed again) when omitted.
            **connect_kwargs: Passed to ``ws_connect`` (headers, ssl, ...)
        """
        self.url = url
        self.ready_state = ReadyState.CONNECTING
        self.on_open: Callable[[], None] | None = None
        self.on_close: Callable[[CloseEvent], None] | None = None
        self.on_error: Callable[[Any], None] | None = None
        self.on_message: Callable[[str], None] | None = None

        self._http_session = session
        self._owns_session = session is None
        self._connect_kwargs = connect_kwargs
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._close_request: CloseEvent | None = None
        self._closer: asyncio.Task[Any] | None = None
        self._task = asyncio.get_running_loop().create_task(self._run())

    def send(self, message: str) -> None:
        if self.ready_state != ReadyState.OPEN:
            raise ConnectionError("WebSocket is not open")
        self._outbox.put_nowait(message)

    def close(self, code: int = 1000, reason: str = "") -> None:
        if self.ready_state in (ReadyState.CLOSING, ReadyState.CLOSED):
            return
        self._close_request = CloseEvent(code, reason)
        connected = self.ready_state == ReadyState.OPEN
        self.ready_state = ReadyState.CLOSING
        if connected and self._ws is not None:
            self._closer = asyncio.get_running_loop().create_task(
                self._ws.close(code=code, message=reason.encode("utf-8"))
            )

    async def _run(self) -> None:
        writer: asyncio.Task[None] | None = None
        try:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            try:
                self._ws = await self._http_session.ws_connect(self.url, **self._connect_kwargs)
            except (aiohttp.ClientError, OSError) as e:
                logger.debug("WebSocket connect to %s failed: %s", self.url, e)
                self._dispatch("on_error", e)
                return

            if self._close_request is not None:
                # closed while still connecting
                await self._ws.close(
                    code=self._close_request.code,
                    message=self._close_request.reason.encode("utf-8"),
                )
                return

            self.ready_state = ReadyState.OPEN
            writer = asyncio.create_task(self._write_loop())
            self._dispatch("on_open")

            while True:
                msg = await self._ws.receive()
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._dispatch("on_message", msg.data)
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    self._dispatch("on_message", msg.data.decode("utf-8"))
                elif msg.type in (
                    aiohttp.WSMsgType.CLOSE,
                    aiohttp.WSMsgType.CLOSING,
                    aiohttp.WSMsgType.CLOSED,
                ):
                    break
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    self._dispatch("on_error", self._ws.exception())
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Error in websocket reader for %s", self.url)
            self._dispatch("on_error", e)
        finally:
            if writer is not None:
                writer.cancel()
            if self._closer is not None:
                try:
                    await self._closer
                except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
                    logger.debug("WebSocket close handshake with %s failed: %s", self.url, e)
            self.ready_state = ReadyState.CLOSED
            event = self._close_event()
            if self._owns_session and self._http_session is not None:
                await self._http_session.close()
                self._http_session = None
            self._dispatch("on_close", event)

    async def _write_loop(self) -> None:
        assert self._ws is not None
        while True:
            message = await self._outbox.get()
            try:
                await self._ws.send_str(message)
            except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
                logger.debug("WebSocket send to %s failed: %s", self.url, e)
                self._dispatch("on_error", e)
                return

    def _close_event(self) -> CloseEvent:
        if self._close_request is not None:
            return self._close_request
        if self._ws is not None and self._ws.close_code is not None:
            return CloseEvent(self._ws.close_code, "")
        return CloseEvent(ABNORMAL_CLOSURE, "")

    def _dispatch(self, name: str, *args: Any) -> None:
        callback = getattr(self, name)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Error in websocket %s handler", name)

    def __repr__(self) -> str:
        return f"AiohttpWebSocket({self.url!r}, ready_state={self.ready_state.name})"
