# src/dfremote/transport_tcp.py
"""
dfremote — TCP connection (asyncio)

Bridges an asyncio stream transport to a ConnectionListener:

  TcpConnection(host, port) --attach(runner)--> await open()
      connection_made -> runner.connection_made()
      data_received   -> runner.data_received(chunk)
      connection_lost -> runner.connection_lost(exc)

Chunks are forwarded exactly as the socket delivers them; reassembly is the
runner's job.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from dfremote.errors import ConnectionStateError
from dfremote.net_logging import log_event
from dfremote.transport import ConnectionListener, ReadyState

_log = logging.getLogger("dfremote.transport")


def tcp_addr(host: str, port: int) -> str:
    return f"tcp://{host}:{int(port)}"


class _StreamProtocol(asyncio.Protocol):
    def __init__(self, conn: "TcpConnection") -> None:
        self._conn = conn

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._conn._on_made(transport)  # type: ignore[arg-type]

    def data_received(self, data: bytes) -> None:
        self._conn._on_data(data)

    def eof_received(self) -> Optional[bool]:
        # Returning a falsy value lets asyncio close the transport.
        return None

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._conn._on_lost(exc)


class TcpConnection:
    def __init__(self, host: str, port: int) -> None:
        self.host = str(host)
        self.port = int(port)
        self._state = ReadyState.CONNECTING
        self._close_requested = False
        self._transport: Optional[asyncio.Transport] = None
        self._listener: Optional[ConnectionListener] = None

    @property
    def address(self) -> str:
        return tcp_addr(self.host, self.port)

    @property
    def ready_state(self) -> ReadyState:
        return self._state

    def attach(self, listener: ConnectionListener) -> None:
        self._listener = listener

    async def open(self) -> None:
        if self._close_requested:
            return
        loop = asyncio.get_running_loop()
        log_event(_log, "tcp_connecting", addr=self.address)
        try:
            await loop.create_connection(lambda: _StreamProtocol(self), self.host, self.port)
        except OSError:
            self._state = ReadyState.CLOSED
            raise

    def send(self, payload: bytes) -> None:
        if self._state is not ReadyState.OPEN or self._transport is None:
            raise ConnectionStateError("not_open", f"cannot send on connection in state {self._state.value}")
        self._transport.write(payload)

    def close(self) -> None:
        self._close_requested = True
        if self._state in (ReadyState.CLOSING, ReadyState.CLOSED):
            return
        if self._transport is None:
            # still connecting; _on_made drops the socket when it arrives
            self._state = ReadyState.CLOSED
            return
        self._state = ReadyState.CLOSING
        self._transport.close()

    # -------------------------
    # protocol callbacks
    # -------------------------

    def _on_made(self, transport: asyncio.Transport) -> None:
        if self._close_requested:
            log_event(_log, "tcp_closed_before_open", addr=self.address)
            transport.close()
            return
        self._transport = transport
        self._state = ReadyState.OPEN
        log_event(_log, "tcp_open", addr=self.address)
        if self._listener is not None:
            self._listener.connection_made()

    def _on_data(self, data: bytes) -> None:
        if self._listener is not None:
            self._listener.data_received(data)

    def _on_lost(self, exc: Optional[BaseException]) -> None:
        opened = self._transport is not None
        self._state = ReadyState.CLOSED
        self._transport = None
        log_event(_log, "tcp_closed", addr=self.address, error=None if exc is None else str(exc))
        if opened and self._listener is not None:
            self._listener.connection_lost(exc)
