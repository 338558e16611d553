"""
dfremote — Connection abstraction

Goal:
  Keep the runner independent of the byte transport so the codec/runner
  stay pure and testable.

A Connection:
  * moves bytes (send/close)
  * reports its ready state
  * forwards lifecycle events to exactly one attached listener (the runner)

Framing is NOT done here; connections carry raw chunks in both directions.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Protocol, runtime_checkable


class ReadyState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@runtime_checkable
class ConnectionListener(Protocol):
    """Receives connection events. Called on the event loop thread only."""

    def connection_made(self) -> None: ...
    def data_received(self, chunk: bytes) -> None: ...
    def connection_lost(self, exc: Optional[BaseException]) -> None: ...


@runtime_checkable
class Connection(Protocol):
    """A single live byte stream to the server."""

    @property
    def address(self) -> str: ...

    @property
    def ready_state(self) -> ReadyState: ...

    def attach(self, listener: ConnectionListener) -> None: ...
    def send(self, payload: bytes) -> None: ...
    def close(self) -> None: ...
