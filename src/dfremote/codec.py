# src/dfremote/codec.py
"""
dfremote — Wire codec

Turns the inbound byte stream into LogicalReply values and DwarfMessage
values into frames. The codec is a small state machine:

  handshake pending -> (12-byte response magic) -> framing

and holds TEXT notifications until the terminal RESULT/FAIL frame of the
same reply arrives.

decode() never raises for wire problems. It returns one of:

  NotReady          not enough bytes for a complete reply (TEXT frames may
                    still have been consumed)
  Reply             one complete LogicalReply
  RecoverableError  a single reply was bad; the connection stays open
  FatalError        the stream cannot be trusted; the connection must close

One codec instance belongs to one connection.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple, Union, runtime_checkable

from dfremote.errors import WireEncodeError
from dfremote.messages import (
    HANDSHAKE_SIZE,
    MAX_FRAME_BYTES,
    REQUEST_MAGIC_HDR,
    RESPONSE_MAGIC,
    DwarfMessage,
    HeaderRevision,
    LogicalReply,
    RpcId,
    bytes_equal,
    header_struct,
)
from dfremote.net_logging import log_event, log_warning

_log = logging.getLogger("dfremote.codec")


# ---------------------------------------------------------------------
# Byte accumulator
# ---------------------------------------------------------------------


class ByteAccumulator:
    """Unconsumed inbound bytes. Decoders shrink it from the front only."""

    __slots__ = ("_buf",)

    def __init__(self, initial: bytes = b"") -> None:
        self._buf = bytearray(initial)

    def __len__(self) -> int:
        return len(self._buf)

    def __bool__(self) -> bool:
        return bool(self._buf)

    def append(self, chunk: bytes) -> None:
        self._buf.extend(chunk)

    def peek(self, n: int) -> bytes:
        return bytes(self._buf[:n])

    def unpack_from(self, st: struct.Struct) -> Tuple[int, ...]:
        return st.unpack_from(self._buf, 0)

    def consume(self, n: int) -> bytes:
        out = bytes(self._buf[:n])
        del self._buf[:n]
        return out

    def clear(self) -> None:
        self._buf.clear()

    @property
    def view(self) -> bytes:
        return bytes(self._buf)


# ---------------------------------------------------------------------
# Decode results
# ---------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NotReady:
    pass


NOT_READY = NotReady()


@dataclass(frozen=True, slots=True)
class Reply:
    reply: LogicalReply


@dataclass(frozen=True, slots=True)
class RecoverableError:
    code: str
    reason: str


@dataclass(frozen=True, slots=True)
class FatalError:
    code: str
    reason: str


DecodeResult = Union[NotReady, Reply, RecoverableError, FatalError]


# ---------------------------------------------------------------------
# Codec interface
# ---------------------------------------------------------------------


@runtime_checkable
class Codec(Protocol):
    def open(self) -> Optional[bytes]: ...
    def encode(self, message: DwarfMessage) -> bytes: ...
    def decode(self, buf: ByteAccumulator) -> DecodeResult: ...
    def close(self) -> Optional[bytes]: ...


# ---------------------------------------------------------------------
# DFHack wire codec
# ---------------------------------------------------------------------


class DwarfWireCodec:
    def __init__(self, *, revision: HeaderRevision = HeaderRevision.PADDED) -> None:
        self.revision = HeaderRevision(revision)
        self._header = header_struct(self.revision)
        self._shook_hands = False
        self._text_messages: List[DwarfMessage] = []

    @property
    def shook_hands(self) -> bool:
        return self._shook_hands

    @property
    def header_size(self) -> int:
        return self._header.size

    @property
    def pending_texts(self) -> int:
        return len(self._text_messages)

    def open(self) -> Optional[bytes]:
        return REQUEST_MAGIC_HDR

    def encode(self, message: DwarfMessage) -> bytes:
        data = bytes(message.data)
        try:
            header = self._header.pack(int(message.id), len(data))
        except struct.error as e:
            raise WireEncodeError("encode_failed", f"cannot frame message id={message.id}: {e}") from e
        return header + data

    def close(self) -> Optional[bytes]:
        return self.encode(DwarfMessage(id=int(RpcId.QUIT)))

    def decode(self, buf: ByteAccumulator) -> DecodeResult:
        if not self._shook_hands:
            if len(buf) < HANDSHAKE_SIZE:
                return NOT_READY
            if not bytes_equal(buf.peek(len(RESPONSE_MAGIC)), RESPONSE_MAGIC):
                log_warning(_log, "codec_handshake_invalid", got=buf.peek(HANDSHAKE_SIZE).hex())
                return FatalError("handshake_invalid", "Handshake response invalid.")
            buf.consume(HANDSHAKE_SIZE)
            self._shook_hands = True
            log_event(_log, "codec_handshake_ok", revision=self.revision.value)

        hsize = self._header.size
        if len(buf) < hsize:
            return NOT_READY

        msg_id, size = buf.unpack_from(self._header)

        if msg_id == RpcId.FAIL:
            # size carries the status code; there is no body.
            buf.consume(hsize)
            return Reply(self._complete(DwarfMessage.fail(size)))

        if msg_id not in (RpcId.TEXT, RpcId.RESULT):
            # header only; the size field of an unknown frame is not a body length
            buf.consume(hsize)
            log_warning(_log, "codec_illegal_reply_id", id=msg_id, size=size)
            return RecoverableError("illegal_reply_id", f"Illegal reply ID: {msg_id}")

        if size < 0 or size > MAX_FRAME_BYTES:
            log_warning(_log, "codec_frame_size_invalid", id=msg_id, size=size)
            return FatalError("frame_size_invalid", f"Invalid size in frame: {size}")

        if len(buf) < hsize + size:
            return NOT_READY

        data = buf.consume(hsize + size)[hsize:]

        if msg_id == RpcId.TEXT:
            self._text_messages.append(DwarfMessage(id=msg_id, data=data))
            return NOT_READY

        return Reply(self._complete(DwarfMessage(id=msg_id, data=data)))

    def _complete(self, terminal: DwarfMessage) -> LogicalReply:
        texts = tuple(self._text_messages)
        self._text_messages.clear()
        return LogicalReply(result=terminal, texts=texts)
