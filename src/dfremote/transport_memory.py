from __future__ import annotations

import asyncio
from typing import Callable, Iterable, List, Optional

from dfremote.errors import ConnectionStateError
from dfremote.transport import ConnectionListener, ReadyState

# Called with every payload the client sends; returns chunks to deliver back.
Responder = Callable[[bytes], Iterable[bytes]]


class MemoryConnection:
    """
    Minimal in-process connection used for unit tests and harnesses.

    - Does not open sockets
    - Records everything sent (sent / drain())
    - Optional responder produces reply chunks, delivered on the next
      event loop iteration like a real socket would
    - inject() delivers a chunk immediately
    """

    def __init__(self, *, responder: Optional[Responder] = None, address: str = "mem://dfhack") -> None:
        self._address = address
        self._state = ReadyState.CONNECTING
        self._listener: Optional[ConnectionListener] = None
        self.responder = responder
        self.sent: List[bytes] = []

    @property
    def address(self) -> str:
        return self._address

    @property
    def ready_state(self) -> ReadyState:
        return self._state

    def attach(self, listener: ConnectionListener) -> None:
        self._listener = listener

    def open(self) -> None:
        self._state = ReadyState.OPEN
        if self._listener is not None:
            self._listener.connection_made()

    def send(self, payload: bytes) -> None:
        if self._state is not ReadyState.OPEN:
            raise ConnectionStateError("not_open", f"cannot send on connection in state {self._state.value}")
        self.sent.append(bytes(payload))
        if self.responder is None:
            return
        for chunk in self.responder(bytes(payload)):
            self._deliver_soon(chunk)

    def close(self) -> None:
        if self._state is ReadyState.CLOSED:
            return
        self._state = ReadyState.CLOSED
        if self._listener is not None:
            self._listener.connection_lost(None)

    # ---- helpers for tests / harness ----

    def inject(self, chunk: bytes) -> None:
        if self._listener is not None:
            self._listener.data_received(bytes(chunk))

    def drain(self) -> List[bytes]:
        out = list(self.sent)
        self.sent.clear()
        return out

    def _deliver_soon(self, chunk: bytes) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deliver(chunk)
            return
        loop.call_soon(self._deliver, chunk)

    def _deliver(self, chunk: bytes) -> None:
        if self._state is ReadyState.OPEN:
            self.inject(chunk)
