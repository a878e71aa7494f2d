"""Pydantic configuration models for enigma sessions.

These models are validated once, when a session is created. Nothing on the
request path touches pydantic.
"""

from __future__ import annotations

from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from enigma.websocket import AiohttpWebSocket

DEFAULT_RESUME_TIMEOUT = 5.0


class ProtocolConfig(BaseModel):
    """Additional JSON-RPC protocol settings.

    Attributes:
        delta: Set to False to disable the bandwidth-reducing delta protocol
    """

    model_config = ConfigDict(frozen=False)

    delta: bool = True


class Mixin(BaseModel):
    """Extra or replacement methods for generated APIs of some types.

    ``type`` and ``types`` are both accepted and merged into ``types``.

    Attributes:
        types: API types (e.g. "Doc", or a generic type like "my-chart") to apply to
        extend: New members. Colliding with an existing method is an error.
        override: Replacements for existing methods. Each is called as
            ``override(self, base, *args)`` where ``base`` is the bound original.
        init: Called as ``init(api=..., config=...)`` for every new API instance
    """

    model_config = ConfigDict(frozen=False, arbitrary_types_allowed=True)

    types: list[str] = Field(default_factory=list)
    extend: dict[str, Any] = Field(default_factory=dict)
    override: dict[str, Callable[..., Any]] = Field(default_factory=dict)
    init: Callable[..., Any] | None = None

    @model_validator(mode="before")
    @classmethod
    def merge_type_and_types(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        types = data.get("types") or []
        if isinstance(types, str):
            types = [types]
        single = data.pop("type", None)
        if single:
            types = [*types, single]
        data["types"] = types
        return data

    @field_validator("types")
    @classmethod
    def validate_types(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("Mixin must target at least one type")
        return v


class RequestInterceptor(BaseModel):
    """Request-phase step: ``on_fulfilled(session, request) -> request``."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    on_fulfilled: Callable[..., Any] | None = None
    on_rejected: Callable[..., Any] | None = None


class ResponseInterceptor(BaseModel):
    """Response-phase step.

    ``on_fulfilled(session, request, response)`` transforms a response,
    ``on_rejected(session, request, error)`` handles (or re-raises) a failure.
    Either may return an awaitable.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    on_fulfilled: Callable[..., Any] | None = None
    on_rejected: Callable[..., Any] | None = None


class Configuration(BaseModel):
    """Everything needed to create a session.

    Attributes:
        engine_schema: The engine schema document (passed as ``schema``)
        url: Websocket URL of the engine (ws:// or wss://)
        create_socket: Socket factory, ``create_socket(url) -> Socket``
        suspend_on_close: Suspend instead of close when the socket drops
        mixins: Applied in list order, before any API is generated
        request_interceptors: Run in list order before a request is sent
        response_interceptors: Run in list order between the built-in steps
        protocol: Protocol settings
        reject_missing_objects: Reject with OBJECT_NOT_FOUND when the engine
            answers with a null handle and type; resolve to None otherwise
        resume_timeout: Seconds to wait for OnConnected after reconnecting
    """

    model_config = ConfigDict(
        frozen=False,
        arbitrary_types_allowed=True,
        populate_by_name=True,
    )

    engine_schema: dict[str, Any] = Field(..., alias="schema", description="Engine schema document")
    url: str = Field(..., description="Engine websocket URL")
    create_socket: Callable[[str], Any] = Field(
        default=AiohttpWebSocket,
        description="Socket factory",
    )
    suspend_on_close: bool = False
    mixins: list[Mixin] = Field(default_factory=list)
    request_interceptors: list[RequestInterceptor] = Field(default_factory=list)
    response_interceptors: list[ResponseInterceptor] = Field(default_factory=list)
    protocol: ProtocolConfig = Field(default_factory=ProtocolConfig)
    reject_missing_objects: bool = True
    resume_timeout: float = Field(default=DEFAULT_RESUME_TIMEOUT, gt=0)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL format."""
        if not v:
            raise ValueError("URL cannot be empty")

        valid_schemes = ("ws://", "wss://")
        if not any(v.startswith(scheme) for scheme in valid_schemes):
            raise ValueError(
                f"URL must start with one of: {', '.join(valid_schemes)}"
            )
        return v

    @field_validator("engine_schema")
    @classmethod
    def validate_schema(cls, v: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(v.get("structs"), dict):
            raise ValueError("Schema must contain a 'structs' object")
        return v
