"""Pytest configuration for all tests."""

import asyncio
import copy
import json
from typing import Any, Callable

import pytest

from enigma.websocket import CloseEvent, ReadyState

SCHEMA: dict[str, Any] = {
    "structs": {
        "Global": {
            "OpenDoc": {
                "In": [
                    {"Name": "qDocName", "DefaultValue": ""},
                    {"Name": "qUserName", "DefaultValue": ""},
                    {"Name": "qPassword", "DefaultValue": ""},
                    {"Name": "qSerial", "DefaultValue": ""},
                    {"Name": "qNoData", "DefaultValue": False},
                ],
                "Out": [],
            },
            "GetActiveDoc": {"In": [], "Out": []},
            "EngineVersion": {"In": [], "Out": [{"Name": "qVersion"}]},
            "CreateSessionApp": {"In": [], "Out": [{"Name": "qSessionAppId"}]},
            "GetInteract": {
                "In": [{"Name": "qRequestId", "DefaultValue": 0}],
                "Out": [{"Name": "qDef"}],
            },
        },
        "Doc": {
            "GetAppLayout": {"In": [], "Out": [{"Name": "qLayout"}]},
            "CreateSessionObject": {"In": [{"Name": "qProp", "DefaultValue": {}}], "Out": []},
            "GetObject": {"In": [{"Name": "qId", "DefaultValue": ""}], "Out": []},
            "GetVariableById": {"In": [{"Name": "qId", "DefaultValue": ""}], "Out": []},
            "GetField": {
                "In": [
                    {"Name": "qFieldName", "DefaultValue": ""},
                    {"Name": "qStateName", "DefaultValue": ""},
                ],
                "Out": [],
            },
            "DoSave": {"In": [{"Name": "qFileName", "DefaultValue": ""}], "Out": []},
        },
        "GenericObject": {
            "GetLayout": {"In": [], "Out": [{"Name": "qLayout"}]},
            "GetProperties": {"In": [], "Out": [{"Name": "qProp"}]},
            "SetProperties": {"In": [{"Name": "qProp", "DefaultValue": {}}], "Out": []},
            "GetHyperCubeData": {
                "In": [
                    {"Name": "qPath", "DefaultValue": ""},
                    {"Name": "qPages", "DefaultValue": []},
                ],
                "Out": [{"Name": "qDataPages"}],
            },
        },
        "GenericVariable": {
            "GetLayout": {"In": [], "Out": [{"Name": "qLayout"}]},
        },
        "Field": {
            "Select": {
                "In": [
                    {"Name": "qMatch", "DefaultValue": ""},
                    {"Name": "qSoftLock", "DefaultValue": False},
                    {"Name": "qExcludedValuesMode", "DefaultValue": 0},
                ],
                "Out": [],
            },
        },
    }
}

URL = "ws://localhost:9076/app/engineData"

Handler = dict[str, Any] | Callable[[dict[str, Any]], dict[str, Any] | None]


class MockSocket:
    """In-memory socket answering requests through its engine."""

    def __init__(self, url: str, engine: "MockEngine") -> None:
        self.url = url
        self.engine = engine
        self.ready_state = ReadyState.CONNECTING
        self.on_open: Callable[[], None] | None = None
        self.on_close: Callable[[CloseEvent], None] | None = None
        self.on_error: Callable[[Any], None] | None = None
        self.on_message: Callable[[str], None] | None = None
        self.sent: list[dict[str, Any]] = []
        self.close_event: CloseEvent | None = None
        self._loop = asyncio.get_running_loop()
        if engine.refuse_connections:
            self._loop.call_soon(self._refuse)
        else:
            self._loop.call_soon(self._open)

    def _open(self) -> None:
        if self.ready_state != ReadyState.CONNECTING:
            return
        self.ready_state = ReadyState.OPEN
        if self.on_open:
            self.on_open()
        if self.engine.session_state is not None:
            self.push({
                "jsonrpc": "2.0",
                "method": "OnConnected",
                "params": {"qSessionState": self.engine.session_state},
            })

    def _refuse(self) -> None:
        self.ready_state = ReadyState.CLOSED
        if self.on_error:
            self.on_error(ConnectionRefusedError("refused"))
        if self.on_close:
            self.on_close(CloseEvent(1006))

    def send(self, message: str) -> None:
        """Record a request and schedule the engine's answer."""
        data = json.loads(message)
        self.sent.append(data)
        response = self.engine.respond(data)
        if response is not None:
            self._loop.call_soon(self.push, response)

    def push(self, message: dict[str, Any]) -> None:
        """Deliver a message from the engine."""
        if self.ready_state == ReadyState.OPEN and self.on_message:
            self.on_message(json.dumps(message))

    def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the socket."""
        if self.ready_state == ReadyState.CLOSED:
            return
        self.ready_state = ReadyState.CLOSED
        self.close_event = CloseEvent(code, reason)
        if self.on_close:
            self.on_close(self.close_event)

    def drop(self, code: int = 1006) -> None:
        """Simulate the network going away."""
        self.close(code)

    def fail(self, error: Any) -> None:
        """Simulate a socket error."""
        if self.on_error:
            self.on_error(error)


class MockEngine:
    """Scripted engine: a socket factory whose sockets answer by method name.

    Handlers are response envelopes (``{"result": ...}`` or ``{"error": ...}``)
    or callables producing one from the request. Returning None leaves the
    request unanswered. With ``hold`` set, nothing is answered.
    """

    def __init__(self) -> None:
        self.handlers: dict[str, Handler] = {}
        self.sockets: list[MockSocket] = []
        self.session_state: str | None = None
        self.refuse_connections = False
        self.hold = False

    def __call__(self, url: str) -> MockSocket:
        socket = MockSocket(url, self)
        self.sockets.append(socket)
        return socket

    @property
    def socket(self) -> MockSocket:
        return self.sockets[-1]

    def handle(self, method: str, handler: Handler) -> None:
        self.handlers[method] = handler

    def respond(self, data: dict[str, Any]) -> dict[str, Any] | None:
        if self.hold:
            return None
        handler = self.handlers.get(data["method"])
        if handler is None:
            response: dict[str, Any] | None = {
                "error": {"code": 2, "parameter": data["method"], "message": "Method not found"}
            }
        elif callable(handler):
            response = handler(data)
        else:
            response = copy.deepcopy(handler)
        if response is None:
            return None
        return {"jsonrpc": "2.0", "id": data["id"], **response}

    def requests(self, method: str | None = None) -> list[dict[str, Any]]:
        """Every request sent on any socket, optionally filtered by method."""
        return [
            data
            for socket in self.sockets
            for data in socket.sent
            if method is None or data["method"] == method
        ]


@pytest.fixture
def schema() -> dict[str, Any]:
    return copy.deepcopy(SCHEMA)


@pytest.fixture
def engine() -> MockEngine:
    return MockEngine()


@pytest.fixture
def make_config(schema: dict[str, Any], engine: MockEngine) -> Callable[..., dict[str, Any]]:
    """Configuration dict wired to the mock engine, with overrides."""

    def make(**overrides: Any) -> dict[str, Any]:
        config = {"schema": schema, "url": URL, "create_socket": engine}
        config.update(overrides)
        return config

    return make
