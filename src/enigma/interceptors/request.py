"""Built-in request interceptors."""

from __future__ import annotations

from typing import TYPE_CHECKING

from enigma.request import OUT_KEY_FULL_RESULT, SUCCESS_KEY, RpcRequest

if TYPE_CHECKING:
    from enigma.session import Session


def delta_request_interceptor(session: Session, request: RpcRequest) -> RpcRequest:
    """Ask for delta responses unless the call returns nothing worth patching."""
    request.delta = (
        session.config.protocol.delta
        and request.out_key != OUT_KEY_FULL_RESULT
        and request.out_key != SUCCESS_KEY
    )
    return request
