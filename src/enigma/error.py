"""Error types for the enigma engine client.

Errors fall into four families:

- ConfigurationError: raised synchronously while setting up a session
  (missing configuration, unknown schema types, illegal mixins).
- ProtocolError: a single call received something it could not interpret.
- ConnectivityError: the socket is gone; every outstanding call fails.
- ServerError: the engine answered with an explicit ``error`` field.

Every error carries a numeric ``code``. Library codes are negative and listed
in :class:`ErrorCode`; server errors keep whatever code the engine sent.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Library error codes."""

    NOT_CONNECTED = -1
    OBJECT_NOT_FOUND = -2
    EXPECTED_ARRAY_OF_PATCHES = -3
    PATCH_HAS_NO_PARENT = -4
    ENTRY_ALREADY_DEFINED = -5
    NO_CONFIG_SUPPLIED = -6
    PROMISE_REQUIRED = -7
    SCHEMA_STRUCT_TYPE_NOT_FOUND = -8
    SCHEMA_MIXIN_CANT_OVERRIDE_FUNCTION = -9
    SCHEMA_MIXIN_EXTEND_NOT_ALLOWED = -10
    SESSION_SUSPENDED = -11
    SESSION_NOT_ATTACHED = -12


class EnigmaError(Exception):
    """Base class for every error raised by this package.

    Attributes:
        code: Numeric error code
        message: Human readable description
        enigma_error: Always True, lets callers tell library errors apart
    """

    enigma_error = True

    def __init__(self, message: str, code: int) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code}, message={self.message!r})"

    @classmethod
    def create(cls, code: ErrorCode, message: str, **extra: Any) -> EnigmaError:
        """Create the error subclass matching a library error code.

        Args:
            code: The library error code
            message: Description of the failure
            **extra: Additional attributes for the subclass (e.g. ``event``)

        Returns:
            An instance of the subclass registered for ``code``
        """
        error_cls = _CATEGORIES.get(code, EnigmaError)
        return error_cls(message, code, **extra)


class ConfigurationError(EnigmaError):
    """Setup-time error. Never recoverable."""


class ProtocolError(EnigmaError):
    """A response could not be interpreted for the call that made it."""


class ConnectivityError(EnigmaError):
    """The socket is not connected, was closed, or reported an error.

    Attributes:
        event: The socket event that triggered the failure, if any
    """

    def __init__(self, message: str, code: int = ErrorCode.NOT_CONNECTED, event: Any = None) -> None:
        super().__init__(message, code)
        self.event = event


class ServerError(EnigmaError):
    """The engine rejected a request.

    Attributes:
        parameter: The offending parameter as reported by the engine
    """

    def __init__(self, message: str, code: int, parameter: Any = None) -> None:
        super().__init__(message, code)
        self.parameter = parameter

    @classmethod
    def from_wire(cls, error: dict[str, Any]) -> ServerError:
        """Build a ServerError from the ``error`` member of an envelope."""
        return cls(
            error.get("message", ""),
            error.get("code"),
            parameter=error.get("parameter"),
        )


class SessionError(EnigmaError):
    """The session is in a state that does not allow the operation."""


_CATEGORIES: dict[ErrorCode, type[EnigmaError]] = {
    ErrorCode.NOT_CONNECTED: ConnectivityError,
    ErrorCode.OBJECT_NOT_FOUND: ProtocolError,
    ErrorCode.EXPECTED_ARRAY_OF_PATCHES: ProtocolError,
    ErrorCode.PATCH_HAS_NO_PARENT: ProtocolError,
    ErrorCode.ENTRY_ALREADY_DEFINED: ConfigurationError,
    ErrorCode.NO_CONFIG_SUPPLIED: ConfigurationError,
    ErrorCode.PROMISE_REQUIRED: ConfigurationError,
    ErrorCode.SCHEMA_STRUCT_TYPE_NOT_FOUND: ConfigurationError,
    ErrorCode.SCHEMA_MIXIN_CANT_OVERRIDE_FUNCTION: ConfigurationError,
    ErrorCode.SCHEMA_MIXIN_EXTEND_NOT_ALLOWED: ConfigurationError,
    ErrorCode.SESSION_SUSPENDED: SessionError,
    ErrorCode.SESSION_NOT_ATTACHED: SessionError,
}
