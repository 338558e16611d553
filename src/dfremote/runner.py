# src/dfremote/runner.py
"""
dfremote — Codec runner

Wraps one Connection with write / async read on top of a Codec.

Correlation:
  The wire carries no request ids. Replies are matched to readers strictly
  in FIFO order: the oldest waiting read() gets the next reply. Replies that
  arrive with nobody waiting are kept (in order) for the next read().

Errors from the codec:
  FatalError        -> connection closed, every waiting read() rejected
  RecoverableError  -> only the oldest waiting read() rejected

All methods must be called from the event loop that drives the connection.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Callable, Deque, Optional, Union

from dfremote.codec import ByteAccumulator, Codec, FatalError, RecoverableError, Reply
from dfremote.errors import (
    CodecError,
    ConnectionStateError,
    DfRemoteError,
    FramedCodecError,
    TransportClosed,
)
from dfremote.messages import DwarfMessage, LogicalReply
from dfremote.net_logging import log_event, log_warning
from dfremote.transport import Connection, ReadyState

_log = logging.getLogger("dfremote.runner")

DEFAULT_CLOSE_GRACE_S = 0.1

OnOpen = Callable[["CodecRunner"], Any]
_Unread = Union[LogicalReply, DfRemoteError]


class CodecRunner:
    def __init__(
        self,
        codec: Codec,
        connection: Connection,
        *,
        on_open: Optional[OnOpen] = None,
        close_grace_s: float = DEFAULT_CLOSE_GRACE_S,
    ) -> None:
        self.codec = codec
        self.connection = connection
        self._on_open = on_open
        self._close_grace_s = float(close_grace_s)

        self._buf = ByteAccumulator()
        self._queued_writes: Deque[bytes] = deque()
        self._callback_queue: Deque[asyncio.Future] = deque()
        self._unread: Deque[_Unread] = deque()

        self._dead = False
        self._closing = False

        connection.attach(self)

    # -------------------------
    # introspection
    # -------------------------

    @property
    def closed(self) -> bool:
        return self._dead or self.connection.ready_state is ReadyState.CLOSED

    @property
    def pending_count(self) -> int:
        return len(self._callback_queue)

    @property
    def unread_count(self) -> int:
        return len(self._unread)

    @property
    def buffered_bytes(self) -> int:
        return len(self._buf)

    # -------------------------
    # connection events
    # -------------------------

    def connection_made(self) -> None:
        log_event(_log, "runner_open", addr=self.connection.address, queued_writes=len(self._queued_writes))
        init = self.codec.open()
        if init is not None:
            self.connection.send(init)
        while self._queued_writes:
            self.connection.send(self._queued_writes.popleft())
        # ready as soon as the transport connects; binds queue behind the handshake
        if self._on_open is not None:
            self._on_open(self)

    def data_received(self, chunk: bytes) -> None:
        if self._dead:
            return
        self._buf.append(chunk)

        while self._buf:
            prev_len = len(self._buf)
            result = self.codec.decode(self._buf)

            if isinstance(result, FatalError):
                self._fail(CodecError(result.code, result.reason))
                return

            if isinstance(result, RecoverableError):
                log_warning(_log, "runner_recoverable_error", code=result.code, reason=result.reason)
                self._pop_reject(FramedCodecError(result.code, result.reason))
            elif isinstance(result, Reply):
                self._pop_reply(result.reply)

            if len(self._buf) == prev_len:
                break

    def connection_lost(self, exc: Optional[BaseException]) -> None:
        self._dead = True
        self._queued_writes.clear()
        self._unread.clear()
        self._buf.clear()

        callbacks = list(self._callback_queue)
        self._callback_queue.clear()
        log_event(
            _log,
            "runner_connection_lost",
            addr=self.connection.address,
            error=None if exc is None else str(exc),
            pending=len(callbacks),
        )
        if not callbacks:
            return
        err = TransportClosed("connection_lost", f"connection lost: {exc}" if exc else "connection closed")
        for fut in callbacks:
            if not fut.done():
                fut.set_exception(err)

    # -------------------------
    # dispatch
    # -------------------------

    def _fail(self, err: CodecError) -> None:
        log_warning(_log, "runner_fatal_error", code=err.code, reason=str(err), pending=len(self._callback_queue))
        callbacks = list(self._callback_queue)
        self._callback_queue.clear()
        self._dead = True
        self._buf.clear()
        self._queued_writes.clear()
        self._unread.clear()
        self.connection.close()
        for fut in callbacks:
            if not fut.done():
                fut.set_exception(err)

    def _pop_reply(self, reply: LogicalReply) -> None:
        if not self._callback_queue:
            self._unread.append(reply)
            return
        fut = self._callback_queue.popleft()
        if fut.done():
            # The reader gave up (e.g. timed out); the reply was still theirs.
            log_warning(_log, "runner_reply_dropped", result_id=reply.result.id)
            return
        fut.set_result(reply)

    def _pop_reject(self, err: DfRemoteError) -> None:
        if not self._callback_queue:
            self._unread.append(err)
            return
        fut = self._callback_queue.popleft()
        if fut.done():
            log_warning(_log, "runner_error_dropped", code=err.code)
            return
        fut.set_exception(err)

    # -------------------------
    # public API
    # -------------------------

    def write(self, message: DwarfMessage) -> None:
        state = self.connection.ready_state
        if self._dead or self._closing or state in (ReadyState.CLOSING, ReadyState.CLOSED):
            raise ConnectionStateError("not_writable", f"cannot write to connection in state {state.value}")
        frame = self.codec.encode(message)
        if state is ReadyState.CONNECTING:
            self._queued_writes.append(frame)
        else:
            self.connection.send(frame)

    async def read(self) -> LogicalReply:
        """
        Wait for the next complete reply.

        Raises FramedCodecError if that reply was malformed, CodecError if
        the connection failed while waiting.
        """
        if self._unread:
            item = self._unread.popleft()
            log_warning(_log, "runner_early_reply", item=repr(item))
            if isinstance(item, DfRemoteError):
                raise item
            return item

        if self._dead:
            raise TransportClosed("runner_closed", "connection is closed")

        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self._callback_queue.append(fut)
        return await fut

    async def write_read(self, message: DwarfMessage) -> LogicalReply:
        self.write(message)
        return await self.read()

    def close(self) -> None:
        if self._closing or self._dead:
            return
        self._closing = True

        if self.connection.ready_state is not ReadyState.OPEN:
            self.connection.close()
            return

        quit_frame = self.codec.close()
        if quit_frame is None:
            self.connection.close()
            return

        self.connection.send(quit_frame)
        log_event(_log, "runner_close", addr=self.connection.address, grace_s=self._close_grace_s)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is None or self._close_grace_s <= 0:
            self.connection.close()
            return
        # Give the server a moment to close its side first.
        loop.call_later(self._close_grace_s, self.connection.close)
