"""Ordered request and response interceptor chains.

A chain is a list of steps with optional ``on_fulfilled`` and ``on_rejected``
handlers. The value (or error) produced by one step feeds the next one. While
the chain carries an error, steps without ``on_rejected`` are skipped; a step
that handles the error puts the chain back on the fulfilled path.

Response chain order is fixed at both ends:

    error -> delta -> result -> out param -> <custom steps> -> api
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Sequence

from enigma.api_cache import ApiCache
from enigma.config import RequestInterceptor, ResponseInterceptor
from enigma.interceptors.request import delta_request_interceptor
from enigma.interceptors.response import (
    api_response_interceptor,
    delta_response_interceptor,
    error_response_interceptor,
    out_param_response_interceptor,
    result_response_interceptor,
)
from enigma.request import RpcRequest, settle

if TYPE_CHECKING:
    from enigma.session import Session

logger = logging.getLogger(__name__)


async def run_chain(
    interceptors: Sequence[RequestInterceptor | ResponseInterceptor],
    initial: Any,
    *context: Any,
) -> Any:
    """Feed ``initial`` (a value or awaitable) through ``interceptors``.

    Each handler is called as ``handler(*context, value_or_error)``.

    Returns:
        The value produced by the last step

    Raises:
        Exception: The error left unhandled at the end of the chain
    """
    value: Any = None
    error: Exception | None = None
    try:
        value = await settle(initial)
    except Exception as e:
        error = e

    for interceptor in interceptors:
        if error is None:
            handler = interceptor.on_fulfilled
            argument = value
        else:
            handler = interceptor.on_rejected
            argument = error
        if handler is None:
            continue
        try:
            value = await settle(handler(*context, argument))
            error = None
        except Exception as e:
            error = e

    if error is not None:
        raise error
    return value


class Intercept:
    """Built-in and caller-supplied interceptors of one session."""

    def __init__(
        self,
        apis: ApiCache,
        request_interceptors: Sequence[RequestInterceptor] = (),
        response_interceptors: Sequence[ResponseInterceptor] = (),
    ) -> None:
        self.apis = apis
        self.request_interceptors: list[RequestInterceptor] = [
            RequestInterceptor(on_fulfilled=delta_request_interceptor),
            *request_interceptors,
        ]
        self.response_interceptors: list[ResponseInterceptor] = [
            ResponseInterceptor(on_fulfilled=error_response_interceptor),
            ResponseInterceptor(on_fulfilled=delta_response_interceptor),
            ResponseInterceptor(on_fulfilled=result_response_interceptor),
            ResponseInterceptor(on_fulfilled=out_param_response_interceptor),
            *response_interceptors,
            ResponseInterceptor(on_fulfilled=api_response_interceptor),
        ]

    async def execute_requests(self, session: Session, request: RpcRequest) -> RpcRequest:
        return await run_chain(self.request_interceptors, request, session)

    async def execute_responses(
        self,
        session: Session,
        response: Awaitable[Any],
        request: RpcRequest,
    ) -> Any:
        return await run_chain(self.response_interceptors, response, session, request)
