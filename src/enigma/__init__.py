"""enigma: asyncio client for the Qlik associative engine JSON-RPC API.

```python
import enigma

session = enigma.create({"schema": schema, "url": "ws://localhost:9076/app/engineData"})
global_api = await session.open()
print(await global_api.engine_version())
await session.close()
```
"""

from enigma.config import (
    Configuration,
    Mixin,
    ProtocolConfig,
    RequestInterceptor,
    ResponseInterceptor,
)
from enigma.error import (
    ConfigurationError,
    ConnectivityError,
    EnigmaError,
    ErrorCode,
    ProtocolError,
    ServerError,
    SessionError,
)
from enigma.qix import create
from enigma.request import OUT_KEY_FULL_RESULT, SUCCESS_KEY, RequestPromise, RpcRequest
from enigma.schema import ApiObject, Schema
from enigma.session import Session
from enigma.websocket import AiohttpWebSocket, CloseEvent, ReadyState

__version__ = "0.1.0"

__all__ = [
    "OUT_KEY_FULL_RESULT",
    "SUCCESS_KEY",
    "AiohttpWebSocket",
    "ApiObject",
    "CloseEvent",
    "ConfigurationError",
    "Configuration",
    "ConnectivityError",
    "EnigmaError",
    "ErrorCode",
    "Mixin",
    "ProtocolConfig",
    "ProtocolError",
    "ReadyState",
    "RequestInterceptor",
    "RequestPromise",
    "ResponseInterceptor",
    "RpcRequest",
    "Schema",
    "ServerError",
    "Session",
    "SessionError",
    "create",
]
