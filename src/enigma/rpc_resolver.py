"""Pending-request bookkeeping for the RPC transport."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterator

from enigma.events import EventEmitter

logger = logging.getLogger(__name__)

#: Pseudo request ids tracking the socket lifecycle instead of a request.
OPENED = "opened"
CLOSED = "closed"
RESERVED_IDS = frozenset({OPENED, CLOSED})


class RpcResolver(EventEmitter):
    """Pairs one outstanding id with the future its caller awaits.

    Emits ``resolved`` or ``rejected`` (with the id) exactly once, on the
    first settle. Later settles are ignored.
    """

    def __init__(self, resolver_id: Any, future: asyncio.Future[Any], handle: Any = None) -> None:
        super().__init__()
        self.id = resolver_id
        self.handle = handle
        self.future = future
        self.settled = False

    def resolve_with(self, data: Any) -> None:
        if self.settled:
            return
        self.settled = True
        if not self.future.done():
            self.future.set_result(data)
        self.emit("resolved", self.id)

    def reject_with(self, error: BaseException) -> None:
        if self.settled:
            return
        self.settled = True
        if not self.future.done():
            self.future.set_exception(error)
        self.emit("rejected", self.id)

    def cancel(self) -> None:
        if self.settled:
            return
        self.settled = True
        self.future.cancel()
        self.emit("rejected", self.id)

    def __repr__(self) -> str:
        return f"RpcResolver(id={self.id!r}, handle={self.handle!r}, settled={self.settled})"


class ResolverRegistry:
    """Maps request ids (and the ``opened``/``closed`` pseudo ids) to resolvers.

    Resolvers unregister themselves when they settle, so the registry only
    ever holds outstanding work.
    """

    __slots__ = ("_resolvers",)

    def __init__(self) -> None:
        self._resolvers: dict[Any, RpcResolver] = {}

    def register(self, resolver_id: Any, handle: Any = None) -> asyncio.Future[Any]:
        """Create a resolver for ``resolver_id`` and return its future.

        Registering an id that is still outstanding replaces the previous
        resolver, which is cancelled first so its caller never hangs.
        """
        previous = self._resolvers.get(resolver_id)
        if previous is not None:
            logger.debug("Replacing outstanding resolver %r", resolver_id)
            previous.cancel()

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        resolver = RpcResolver(resolver_id, future, handle)
        resolver.on("resolved", self.unregister)
        resolver.on("rejected", self.unregister)
        self._resolvers[resolver_id] = resolver
        return future

    def unregister(self, resolver_id: Any) -> None:
        resolver = self._resolvers.pop(resolver_id, None)
        if resolver is not None:
            resolver.remove_all_listeners()

    def get(self, resolver_id: Any) -> RpcResolver | None:
        return self._resolvers.get(resolver_id)

    def reject_all_outstanding(self, error: BaseException) -> None:
        """Reject every request resolver. ``opened``/``closed`` are left alone."""
        for resolver_id, resolver in list(self._resolvers.items()):
            if resolver_id in RESERVED_IDS:
                continue
            resolver.reject_with(error)

    def __contains__(self, resolver_id: Any) -> bool:
        return resolver_id in self._resolvers

    def __len__(self) -> int:
        return len(self._resolvers)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._resolvers))
