"""Suspend a session and later reattach it, repairing the API cache."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from enigma.api_cache import ApiCache
from enigma.error import EnigmaError, ErrorCode
from enigma.rpc import RPC, SESSION_CREATED
from enigma.schema import ApiObject

logger = logging.getLogger(__name__)

RPC_CLOSE_MANUAL_SUSPEND = 4000
GLOBAL_HANDLE = -1

#: Method used to fetch an object of a type again by id, None when the
#: type cannot be restored. Other "Generic<Name>" types use "Get<Name>".
GET_METHODS: dict[str, str | None] = {
    "Field": None,
    "Variable": None,
    "GenericVariable": "GetVariableById",
    "GenericObject": "GetObject",
    "GenericDimension": "GetDimension",
    "GenericMeasure": "GetMeasure",
    "GenericBookmark": "GetBookmark",
}


def get_method_name(type_name: str) -> str | None:
    """Return the method restoring objects of ``type_name``, or None."""
    if type_name in GET_METHODS:
        return GET_METHODS[type_name]
    if type_name.startswith("Generic"):
        return "Get" + type_name[len("Generic"):]
    return None


def _returned_handle(response: dict[str, Any]) -> Any:
    if "error" in response:
        return None
    return ((response.get("result") or {}).get("qReturn") or {}).get("qHandle")


class SuspendResume:
    """Tracks whether a session is suspended and knows how to bring it back.

    Attributes:
        is_suspended: True between ``suspend()`` and a successful ``resume()``
        open_doc_params: Parameters of the last OpenDoc sent, used to reopen
            the document when the server created a new session
    """

    def __init__(self, rpc: RPC, apis: ApiCache, timeout: float) -> None:
        self.rpc = rpc
        self.apis = apis
        self.timeout = timeout
        self.is_suspended = False
        self.open_doc_params: list[Any] | dict[str, Any] | None = None
        rpc.on("traffic", self._on_traffic)

    def _on_traffic(self, direction: str, data: dict[str, Any], handle: Any = None) -> None:
        if direction == "sent" and data.get("method") == "OpenDoc":
            self.open_doc_params = data.get("params")

    async def suspend(self, code: int = RPC_CLOSE_MANUAL_SUSPEND, reason: str = "") -> None:
        self.is_suspended = True
        await self.rpc.close(code, reason)

    async def resume(self, only_if_attached: bool = False) -> None:
        """Reconnect and restore every API that can be restored.

        APIs that could not be restored emit ``closed``, the others get their
        new handle and emit ``changed`` (except Global).

        Raises:
            SessionError: ``only_if_attached`` was set and the server created
                a new session. The transport is closed again.
        """
        changed: list[ApiObject] = []
        closed: list[ApiObject] = []
        try:
            await self._restore_rpc_connection(only_if_attached)
            self._restore_global(changed)
            doc = await self._restore_doc(closed, changed)
            await self._restore_doc_objects(doc, closed, changed)
        except Exception as e:
            logger.info("Resume failed: %s", e)
            await self.rpc.close()
            raise

        self.is_suspended = False
        self.apis.clear()
        for api in changed:
            self.apis.add(api.handle, api)
        for api in closed:
            api.emit("closed")
            api.remove_all_listeners()
        for api in changed:
            if api.type != "Global":
                api.emit("changed")
        logger.info("Resumed session, %d APIs restored, %d closed", len(changed), len(closed))

    async def _restore_rpc_connection(self, only_if_attached: bool) -> None:
        session_state = await self.rpc.reopen(self.timeout)
        logger.debug("Reopened socket, session state %s", session_state)
        if session_state == SESSION_CREATED and only_if_attached:
            raise EnigmaError.create(ErrorCode.SESSION_NOT_ATTACHED, "Not attached")

    def _restore_global(self, changed: list[ApiObject]) -> None:
        # the Global handle does not change across sessions
        listings = self.apis.get_apis_by_type("Global")
        if listings:
            changed.append(listings[-1].api)

    async def _restore_doc(self, closed: list[ApiObject], changed: list[ApiObject]) -> ApiObject | None:
        listings = self.apis.get_apis_by_type("Doc")
        if not listings:
            return None
        doc = listings[-1].api

        response = await self.rpc.send({"method": "GetActiveDoc", "handle": GLOBAL_HANDLE, "params": []})
        if "error" in response and self.open_doc_params is not None:
            response = await self.rpc.send(
                {"method": "OpenDoc", "handle": GLOBAL_HANDLE, "params": self.open_doc_params}
            )

        handle = _returned_handle(response)
        if handle is None:
            closed.append(doc)
            return None
        doc.handle = handle
        changed.append(doc)
        return doc

    async def _restore_doc_objects(
        self,
        doc: ApiObject | None,
        closed: list[ApiObject],
        changed: list[ApiObject],
    ) -> None:
        apis = [
            listing.api
            for listing in self.apis.get_apis()
            if listing.api.type not in ("Global", "Doc")
        ]
        if doc is None:
            closed.extend(apis)
            return

        async def restore(api: ApiObject, method: str) -> None:
            response = await self.rpc.send({"method": method, "handle": doc.handle, "params": [api.id]})
            handle = _returned_handle(response)
            if handle is None:
                closed.append(api)
            else:
                api.handle = handle
                changed.append(api)

        tasks = []
        for api in apis:
            method = get_method_name(api.type)
            if method is None:
                closed.append(api)
            else:
                tasks.append(restore(api, method))
        await asyncio.gather(*tasks)
