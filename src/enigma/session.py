"""The session: one engine connection and every API created through it.

Events emitted:
    opened: the socket opened and the Global API exists
    closed (event): the session closed, all APIs emitted ``closed`` first
    suspended ({"initiator": "manual" | "network"}): the session is suspended
    resumed: the session was resumed
    socket-error (error): a runtime socket error
    notification:* (method, params) and notification:<method> (params)
    traffic:* (direction, data) and traffic:sent / traffic:received (data)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from enigma.api_cache import ApiCache
from enigma.config import Configuration
from enigma.error import EnigmaError, ErrorCode
from enigma.events import EventEmitter
from enigma.intercept import Intercept
from enigma.request import RequestPromise, RpcRequest
from enigma.rpc import RPC, RPC_CLOSE_NORMAL
from enigma.schema import ApiObject, Schema
from enigma.suspend_resume import RPC_CLOSE_MANUAL_SUSPEND, SuspendResume
from enigma.websocket import CloseEvent

logger = logging.getLogger(__name__)

GLOBAL_HANDLE = -1
RESUME_METHOD = "Resume"


class Session(EventEmitter):
    """Sends calls through the interceptor chains and owns the API cache.

    Created by :func:`enigma.create`, which wires the collaborators:

    ```python
    session = enigma.create({"schema": schema, "url": "ws://localhost:9076/app/"})
    global_api = await session.open()
    doc = await global_api.open_doc("my-app.qvf")
    await session.close()
    ```
    """

    def __init__(
        self,
        config: Configuration,
        rpc: RPC,
        apis: ApiCache,
        schema: Schema,
        intercept: Intercept,
        suspend_resume: SuspendResume,
    ) -> None:
        super().__init__()
        self.config = config
        self.rpc = rpc
        self.apis = apis
        self.schema = schema
        self.intercept = intercept
        self.suspend_resume = suspend_resume
        self._global: asyncio.Future[ApiObject] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

        rpc.on("socket-error", self._on_socket_error)
        rpc.on("closed", self._on_rpc_closed)
        rpc.on("message", self._on_message)
        rpc.on("notification", self._on_notification)
        rpc.on("traffic", self._on_traffic)
        self.on("closed", lambda *_: self.apis.on_session_closed())

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def open(self) -> asyncio.Future[ApiObject]:
        """Open the socket and return the future of the Global API.

        Repeated calls return the same future until the session is closed.
        """
        if self._global is None:
            self._global = asyncio.ensure_future(self._open())
        return self._global

    async def _open(self) -> ApiObject:
        await self.rpc.open()
        api = self.get_object_api(handle=GLOBAL_HANDLE, type="Global", id="Global", generic_type="Global")
        self.emit("opened")
        return api

    def send(self, request: RpcRequest) -> RequestPromise:
        """Send ``request`` and return its (interceptor processed) result.

        The returned promise carries the id of the request in ``request_id``.
        """
        if self.suspend_resume.is_suspended:
            return RequestPromise.rejected(
                EnigmaError.create(ErrorCode.SESSION_SUSPENDED, "Session suspended")
            )
        request.id = self.rpc.create_request_id()
        return RequestPromise(self._send(request), request.id)

    async def _send(self, request: RpcRequest) -> Any:
        request = await self.intercept.execute_requests(self, request)
        response = self.rpc.send(request.to_envelope())
        request.retry = lambda: self.send(request)
        return await self.intercept.execute_responses(self, response, request)

    def get_object_api(
        self,
        handle: int,
        type: str,
        id: str | None = None,
        generic_type: str | None = None,
    ) -> ApiObject:
        """Return the API of ``handle``, generating and caching it when new."""
        api = self.apis.get_api(handle)
        if api is not None:
            return api
        api = self.schema.generate(type).create(self, handle, id, generic_type)
        self.apis.add(handle, api)
        return api

    async def suspend(self, code: int = RPC_CLOSE_MANUAL_SUSPEND, reason: str = "") -> None:
        """Close the socket but keep every API, until :meth:`resume`."""
        await self.suspend_resume.suspend(code, reason)
        logger.info("Session suspended")
        self.emit("suspended", {"initiator": "manual"})

    async def resume(self, only_if_attached: bool = False) -> None:
        """Reconnect a suspended session.

        Args:
            only_if_attached: Fail with SESSION_NOT_ATTACHED instead of
                restoring APIs on a brand-new server session
        """
        await self.suspend_resume.resume(only_if_attached)
        self.emit("resumed")

    async def close(self, code: int = RPC_CLOSE_NORMAL, reason: str = "") -> CloseEvent:
        """Close the socket, then emit ``closed`` on every API and the session."""
        self._global = None
        self.suspend_resume.is_suspended = False
        event = await self.rpc.close(code, reason)
        logger.info("Session closed")
        self.emit("closed", event)
        return event

    # -------------------------------------------------------------------------
    # Transport events
    # -------------------------------------------------------------------------

    def _on_socket_error(self, error: Any) -> None:
        if self.suspend_resume.is_suspended:
            return
        self.emit("socket-error", error)

    def _on_rpc_closed(self, event: CloseEvent) -> None:
        if self.suspend_resume.is_suspended:
            return
        if event.code in (RPC_CLOSE_NORMAL, RPC_CLOSE_MANUAL_SUSPEND):
            return
        if self.config.suspend_on_close:
            # calls made before the task runs must see the session as suspended
            self.suspend_resume.is_suspended = True
            task = asyncio.ensure_future(self._suspend_from_network())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            self.emit("closed", event)

    async def _suspend_from_network(self) -> None:
        await self.suspend_resume.suspend()
        logger.info("Session suspended after the socket closed")
        self.emit("suspended", {"initiator": "network"})

    def _on_message(self, response: dict[str, Any]) -> None:
        if self.suspend_resume.is_suspended:
            return
        for handle in response.get("change") or ():
            self.apis.on_handle_changed(handle)
        for handle in response.get("close") or ():
            self.apis.on_handle_closed(handle)
        if response.get("suspend"):
            self._resume_handle(response["suspend"][0])

    def _resume_handle(self, handle: Any) -> None:
        future = self.rpc.send({"method": RESUME_METHOD, "handle": handle, "params": []})

        def done(f: asyncio.Future[Any]) -> None:
            if f.cancelled():
                return
            error = f.exception()
            if error is None and "error" in f.result():
                error = f.result()["error"]
            if error is not None:
                logger.warning("Resume of handle %s failed: %s", handle, error)

        future.add_done_callback(done)

    def _on_notification(self, response: dict[str, Any]) -> None:
        self.emit("notification:*", response.get("method"), response.get("params"))
        self.emit(f"notification:{response.get('method')}", response.get("params"))

    def _on_traffic(self, direction: str, data: dict[str, Any], handle: Any = None) -> None:
        self.emit("traffic:*", direction, data)
        self.emit(f"traffic:{direction}", data)
