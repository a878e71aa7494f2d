"""Built-in response interceptors.

Each receives ``(session, request, response)`` and returns the transformed
response, or raises to reject the call.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from enigma import json_patch
from enigma.error import EnigmaError, ErrorCode, ServerError
from enigma.request import OUT_KEY_FULL_RESULT, RpcRequest

if TYPE_CHECKING:
    from enigma.session import Session

logger = logging.getLogger(__name__)

RETURN_KEY = "qReturn"
SESSION_APP_METHODS = frozenset({"CreateSessionApp", "CreateSessionAppFromApp"})
# GetInteract answers with a qReturn that does not describe the interaction
SPURIOUS_RETURN_METHODS = frozenset({"GetInteract"})


def error_response_interceptor(session: Session, request: RpcRequest, response: dict[str, Any]) -> Any:
    if "error" in response:
        raise ServerError.from_wire(response["error"])
    return response


def _is_primitive_root_patch(patches: list[dict[str, Any]]) -> bool:
    if len(patches) != 1:
        return False
    patch = patches[0]
    return (
        patch.get("path") == "/"
        and patch.get("op") in ("add", "replace")
        and not isinstance(patch.get("value"), (dict, list))
    )


def patch_value(session: Session, handle: Any, cache_id: str, patches: list[dict[str, Any]]) -> Any:
    """Apply ``patches`` to the baseline cached under ``cache_id`` for ``handle``.

    Returns:
        The patched value, which also becomes the new baseline
    """
    entry = session.apis.get_patchee(handle, cache_id)
    if not patches:
        return entry if entry is not None else {}

    first = patches[0]
    if _is_primitive_root_patch(patches):
        entry = first.get("value")
    else:
        if not isinstance(entry, (dict, list)):
            entry = [] if isinstance(first.get("value"), list) else {}
        json_patch.apply(entry, patches)
    session.apis.set_patchee(handle, cache_id, entry)
    return entry


def delta_response_interceptor(session: Session, request: RpcRequest, response: dict[str, Any]) -> Any:
    if not response.get("delta"):
        return response

    result = response.get("result") or {}
    for key, patches in result.items():
        if not isinstance(patches, list):
            raise EnigmaError.create(
                ErrorCode.EXPECTED_ARRAY_OF_PATCHES,
                "Unexpected RPC response, expected array of patches",
            )
        result[key] = patch_value(session, request.handle, f"{request.method}-{key}", patches)
    response["result"] = result
    # the cached baselines must not leak into values handed to callers
    return json_patch.clone(response)


def result_response_interceptor(session: Session, request: RpcRequest, response: dict[str, Any]) -> Any:
    return response.get("result")


def out_param_response_interceptor(session: Session, request: RpcRequest, response: Any) -> Any:
    if not isinstance(response, dict):
        return response

    if request.method in SESSION_APP_METHODS and isinstance(response.get(RETURN_KEY), dict):
        response[RETURN_KEY]["qGenericId"] = (
            response.get("qSessionAppId") or response[RETURN_KEY].get("qGenericId")
        )
    elif request.method in SPURIOUS_RETURN_METHODS:
        response.pop(RETURN_KEY, None)

    if RETURN_KEY in response:
        return response[RETURN_KEY]
    if request.out_key != OUT_KEY_FULL_RESULT:
        return response.get(request.out_key)
    return response


def api_response_interceptor(session: Session, request: RpcRequest, response: Any) -> Any:
    if not isinstance(response, dict) or "qHandle" not in response or "qType" not in response:
        return response

    handle = response["qHandle"]
    type_name = response["qType"]
    if handle is not None and type_name is not None:
        return session.get_object_api(
            handle=handle,
            type=type_name,
            id=response.get("qGenericId"),
            generic_type=response.get("qGenericType"),
        )
    if handle is None and type_name is None:
        if session.config.reject_missing_objects:
            raise EnigmaError.create(ErrorCode.OBJECT_NOT_FOUND, "Object not found")
        logger.debug("%s on handle %s returned no object", request.method, request.handle)
        return None
    return response
