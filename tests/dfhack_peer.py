# tests/dfhack_peer.py
"""Scripted DFHack server side, usable as a MemoryConnection responder."""

from __future__ import annotations

import json
from typing import Callable, Dict, Iterable, List, Optional

from dfremote.messages import (
    REQUEST_MAGIC_HDR,
    RESPONSE_MAGIC_HDR,
    CommandResult,
    HeaderRevision,
    RpcId,
    header_struct,
)

Handler = Callable[[bytes], List[bytes]]


def frame(msg_id: int, data: bytes = b"", revision: HeaderRevision = HeaderRevision.PADDED) -> bytes:
    return header_struct(revision).pack(int(msg_id), len(data)) + data


def result_frame(data: bytes = b"", revision: HeaderRevision = HeaderRevision.PADDED) -> bytes:
    return frame(RpcId.RESULT, data, revision)


def text_frame(data: bytes, revision: HeaderRevision = HeaderRevision.PADDED) -> bytes:
    return frame(RpcId.TEXT, data, revision)


def fail_frame(code: int, revision: HeaderRevision = HeaderRevision.PADDED) -> bytes:
    return header_struct(revision).pack(int(RpcId.FAIL), int(code))


def json_result(obj: dict) -> bytes:
    return result_frame(json.dumps(obj).encode("utf-8"))


class FakeDFHack:
    def __init__(
        self,
        *,
        handlers: Optional[Dict[str, Handler]] = None,
        unsupported: Iterable[str] = (),
        malformed_binds: Iterable[str] = (),
        revision: HeaderRevision = HeaderRevision.PADDED,
        handshake_reply: bytes = RESPONSE_MAGIC_HDR,
    ) -> None:
        self.handlers = dict(handlers or {})
        self.unsupported = set(unsupported)
        self.malformed_binds = set(malformed_binds)
        self.revision = revision
        self.handshake_reply = handshake_reply

        self._header = header_struct(revision)
        self._buf = bytearray()
        self.shook_hands = False
        self.quit = False

        self.ids: Dict[int, str] = {}
        self._next_id = 1
        self.binds: List[dict] = []
        self.frame_ids: List[int] = []
        self.calls: List[tuple] = []

    def __call__(self, payload: bytes) -> List[bytes]:
        self._buf.extend(payload)
        out: List[bytes] = []

        if not self.shook_hands:
            if len(self._buf) < len(REQUEST_MAGIC_HDR):
                return out
            assert bytes(self._buf[: len(REQUEST_MAGIC_HDR)]) == REQUEST_MAGIC_HDR
            del self._buf[: len(REQUEST_MAGIC_HDR)]
            self.shook_hands = True
            out.append(self.handshake_reply)

        hsize = self._header.size
        while len(self._buf) >= hsize:
            msg_id, size = self._header.unpack_from(self._buf, 0)
            if len(self._buf) < hsize + size:
                break
            body = bytes(self._buf[hsize : hsize + size])
            del self._buf[: hsize + size]
            self.frame_ids.append(msg_id)
            if msg_id == RpcId.QUIT:
                self.quit = True
                continue
            out.extend(self._handle(msg_id, body))
        return out

    def _handle(self, msg_id: int, body: bytes) -> List[bytes]:
        if msg_id == 0:
            return self._bind(body)

        name = self.ids.get(msg_id)
        self.calls.append((name, body))
        handler = self.handlers.get(name) if name else None
        if handler is None:
            return [fail_frame(CommandResult.NOT_IMPLEMENTED, self.revision)]
        return handler(body)

    def _bind(self, body: bytes) -> List[bytes]:
        req = json.loads(body)
        self.binds.append(req)
        method = req["method"]
        if method in self.unsupported:
            return [fail_frame(CommandResult.NOT_FOUND, self.revision)]
        if method in self.malformed_binds:
            return [frame(RpcId.RESULT, b"not json", self.revision)]
        if method == "BindMethod":
            assigned = 0
        else:
            assigned = self._next_id
            self._next_id += 1
            self.ids[assigned] = method
        data = json.dumps({"assigned_id": assigned}).encode("utf-8")
        return [frame(RpcId.RESULT, data, self.revision)]
