"""Request context and the awaitable handed back to callers."""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

#: ``out_key`` meaning "resolve with the whole result object".
OUT_KEY_FULL_RESULT = -1
#: Output name of fire-and-forget methods, never sent with delta.
SUCCESS_KEY = "qSuccess"


async def settle(value: Any) -> Any:
    """Await ``value`` if it is awaitable, return it as is otherwise."""
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass(eq=False)
class RpcRequest:
    """A call on its way to the engine.

    Interceptors receive and may modify this object; they may also attach
    their own attributes (e.g. a retry counter). ``retry`` is set by the
    session once the request has been sent, and re-submits the request.
    """

    method: str
    handle: int | None
    params: list[Any] | dict[str, Any] = field(default_factory=list)
    out_key: str | int = OUT_KEY_FULL_RESULT
    delta: bool | None = None
    id: int | None = None
    retry: Callable[[], RequestPromise] | None = field(default=None, repr=False)

    def to_envelope(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "method": self.method,
            "handle": self.handle,
            "params": self.params,
        }
        if self.delta is not None:
            data["delta"] = self.delta
        if self.id is not None:
            data["id"] = self.id
        return data


class RequestPromise:
    """Awaitable result of a request, tagged with the request id.

    ``then`` chains keep the tag, so the id of the originating request can be
    read from any promise derived from it.

    Example:
        ```python
        promise = doc.get_app_layout()
        print(promise.request_id)
        layout = await promise.then(lambda layout: layout["qTitle"])
        ```
    """

    __slots__ = ("_future", "request_id")

    def __init__(self, awaitable: Awaitable[Any], request_id: int | None = None) -> None:
        self._future: asyncio.Future[Any] = asyncio.ensure_future(awaitable)
        self.request_id = request_id

    @classmethod
    def rejected(cls, error: BaseException, request_id: int | None = None) -> RequestPromise:
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        future.set_exception(error)
        return cls(future, request_id)

    def then(
        self,
        on_fulfilled: Callable[[Any], Any] | None = None,
        on_rejected: Callable[[Exception], Any] | None = None,
    ) -> RequestPromise:
        return RequestPromise(self._chain(on_fulfilled, on_rejected), self.request_id)

    def catch(self, on_rejected: Callable[[Exception], Any]) -> RequestPromise:
        return self.then(None, on_rejected)

    async def _chain(
        self,
        on_fulfilled: Callable[[Any], Any] | None,
        on_rejected: Callable[[Exception], Any] | None,
    ) -> Any:
        try:
            value = await self._future
        except Exception as e:
            if on_rejected is None:
                raise
            return await settle(on_rejected(e))
        if on_fulfilled is None:
            return value
        return await settle(on_fulfilled(value))

    def done(self) -> bool:
        return self._future.done()

    def result(self) -> Any:
        return self._future.result()

    def exception(self) -> BaseException | None:
        return self._future.exception()

    def add_done_callback(self, callback: Callable[[asyncio.Future[Any]], Any]) -> None:
        self._future.add_done_callback(callback)

    def __await__(self):
        return self._future.__await__()

    def __repr__(self) -> str:
        state = "done" if self._future.done() else "pending"
        return f"RequestPromise(request_id={self.request_id!r}, {state})"
