# src/dfremote/messages.py
"""
dfremote — Wire constants and message types

Protocol summary (DFHack remote protocol):

  RPCHandshakeHeader = { magic: [u8; 8], version: i32 == 1 }
  RPCMessageHeader   = { id: i16, (pad: u16 = 0,) size: i32 }, size <= 64MiB
  RPCMessage         = { header, body: [u8; header.size] }

  RPCReplyResult = { {RESULT, len(body)}, body }
  RPCReplyFail   = { {FAIL, status_code} }            (no body)
  RPCReply       = { {TEXT, notification}*, RPCReplyResult | RPCReplyFail }

  -> { REQUEST_MAGIC, 1 }
  <- { RESPONSE_MAGIC, 1 }
  -> RPCMessage { {procedure_id, len(body)}, body }
  <- RPCReply
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional, Tuple


HANDSHAKE_VERSION = 1

REQUEST_MAGIC = b"DFHack?\n"
RESPONSE_MAGIC = b"DFHack!\n"

REQUEST_MAGIC_HDR = REQUEST_MAGIC + struct.pack("<i", HANDSHAKE_VERSION)
RESPONSE_MAGIC_HDR = RESPONSE_MAGIC + struct.pack("<i", HANDSHAKE_VERSION)

HANDSHAKE_SIZE = len(REQUEST_MAGIC_HDR)  # 12

# 2**26; larger sizes mean the stream is out of sync.
MAX_FRAME_BYTES = 67_108_864

BIND_METHOD_ID = 0


class RpcId(IntEnum):
    """Reserved (non-procedure) values of the header id field."""

    RESULT = -1
    FAIL = -2
    TEXT = -3
    QUIT = -4


class CommandResult(IntEnum):
    """Status codes carried in the size field of a FAIL reply."""

    LINK_FAILURE = -3  # I/O or protocol error
    NEEDS_CONSOLE = -2  # interactive command called without console
    NOT_IMPLEMENTED = -1  # command not implemented, or plugin not loaded
    OK = 0
    FAILURE = 1
    WRONG_USAGE = 2  # wrong arguments or ui state
    NOT_FOUND = 3  # target object not found


class HeaderRevision(str, Enum):
    """
    Frame header layouts seen across protocol history.

    PADDED (canonical): id:i16, pad:u16, size:i32  -> 8 bytes
    LEGACY:             id:i16, size:i32           -> 6 bytes

    There is no negotiation between the two; the client picks one.
    """

    PADDED = "padded"
    LEGACY = "legacy"


_HEADER_STRUCTS = {
    HeaderRevision.PADDED: struct.Struct("<hxxi"),
    HeaderRevision.LEGACY: struct.Struct("<hi"),
}


def header_struct(revision: HeaderRevision) -> struct.Struct:
    return _HEADER_STRUCTS[HeaderRevision(revision)]


def bytes_equal(a: Optional[bytes], b: Optional[bytes]) -> bool:
    if a is b:
        return True
    if a is None or b is None:
        return False
    return bytes(a) == bytes(b)


# ---------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DwarfMessage:
    id: int
    data: bytes = b""

    @classmethod
    def fail(cls, code: int) -> "DwarfMessage":
        return cls(id=int(RpcId.FAIL), data=struct.pack("<i", int(code)))

    @property
    def is_fail(self) -> bool:
        return self.id == RpcId.FAIL

    @property
    def is_text(self) -> bool:
        return self.id == RpcId.TEXT

    @property
    def error_code(self) -> Optional[int]:
        """Status code of a FAIL message, as a CommandResult when known."""
        if not self.is_fail or len(self.data) != 4:
            return None
        (code,) = struct.unpack("<i", self.data)
        try:
            return CommandResult(code)
        except ValueError:
            return code


@dataclass(frozen=True, slots=True)
class LogicalReply:
    """
    All frames answering one request.

    texts are the TEXT notifications in arrival order; result is the
    terminal RESULT or FAIL message.
    """

    result: DwarfMessage
    texts: Tuple[DwarfMessage, ...] = field(default_factory=tuple)

    @property
    def failed(self) -> bool:
        return self.result.is_fail

    @property
    def messages(self) -> Tuple[DwarfMessage, ...]:
        return self.texts + (self.result,)
