# src/dfremote/errors.py
from __future__ import annotations


class DfRemoteError(RuntimeError):
    def __init__(self, code: str, msg: str) -> None:
        super().__init__(msg)
        self.code = code


class CodecError(DfRemoteError):
    """An unrecoverable wire error. The connection is closed."""


class FramedCodecError(DfRemoteError):
    """
    A recoverable wire error. Only the oldest waiting call is rejected;
    the connection stays open.
    """


class WireEncodeError(DfRemoteError):
    pass


class TransportClosed(CodecError):
    """The connection went away while calls were in flight."""


class ConnectionStateError(DfRemoteError):
    """Write attempted on a connection that is closing or closed."""


class MethodNotBound(DfRemoteError):
    """The procedure is unknown or the server refused to bind it."""

    def __init__(self, name: str) -> None:
        super().__init__("method_not_bound", f"method not bound: {name}")
        self.name = name


class SchemaNotFound(DfRemoteError):
    def __init__(self, type_name: str) -> None:
        super().__init__("schema_not_found", f"no codec registered for type: {type_name}")
        self.type_name = type_name


class WireDecodeError(DfRemoteError):
    """A payload could not be decoded with its schema."""
