from __future__ import annotations

import pytest

from dfremote.codec import (
    NOT_READY,
    ByteAccumulator,
    DwarfWireCodec,
    FatalError,
    NotReady,
    RecoverableError,
    Reply,
)
from dfremote.errors import WireEncodeError
from dfremote.messages import (
    MAX_FRAME_BYTES,
    REQUEST_MAGIC_HDR,
    RESPONSE_MAGIC_HDR,
    CommandResult,
    DwarfMessage,
    HeaderRevision,
    RpcId,
)

from dfhack_peer import fail_frame, frame, result_frame, text_frame


def _ready_codec(revision: HeaderRevision = HeaderRevision.PADDED) -> DwarfWireCodec:
    codec = DwarfWireCodec(revision=revision)
    buf = ByteAccumulator(RESPONSE_MAGIC_HDR)
    assert codec.decode(buf) is NOT_READY
    assert codec.shook_hands
    return codec


def _drain(codec: DwarfWireCodec, buf: ByteAccumulator) -> list:
    # Same loop shape as the runner: keep decoding while bytes are consumed.
    out = []
    while buf:
        before = len(buf)
        res = codec.decode(buf)
        if not isinstance(res, NotReady):
            out.append(res)
        if len(buf) == before:
            break
    return out


# ---------------------------------------------------------------------
# encode
# ---------------------------------------------------------------------


def test_encode_padded_header_layout() -> None:
    codec = DwarfWireCodec()
    assert codec.header_size == 8
    assert codec.encode(DwarfMessage(id=5, data=bytes([1, 2, 3]))) == bytes(
        [0x05, 0x00, 0x00, 0x00, 0x03, 0x00, 0x00, 0x00, 0x01, 0x02, 0x03]
    )


def test_encode_legacy_header_layout() -> None:
    codec = DwarfWireCodec(revision=HeaderRevision.LEGACY)
    assert codec.header_size == 6
    assert codec.encode(DwarfMessage(id=5, data=bytes([1, 2, 3]))) == bytes(
        [0x05, 0x00, 0x03, 0x00, 0x00, 0x00, 0x01, 0x02, 0x03]
    )


def test_open_and_close_frames() -> None:
    codec = DwarfWireCodec()
    assert codec.open() == REQUEST_MAGIC_HDR
    assert len(codec.open()) == 12
    assert codec.close() == bytes([0xFC, 0xFF, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00])


def test_encode_rejects_out_of_range_id() -> None:
    with pytest.raises(WireEncodeError):
        DwarfWireCodec().encode(DwarfMessage(id=40_000, data=b""))


# ---------------------------------------------------------------------
# handshake
# ---------------------------------------------------------------------


def test_short_handshake_consumes_nothing() -> None:
    codec = DwarfWireCodec()
    buf = ByteAccumulator(RESPONSE_MAGIC_HDR[:11])
    assert codec.decode(buf) is NOT_READY
    assert len(buf) == 11
    assert not codec.shook_hands


def test_handshake_consumes_exactly_twelve_bytes() -> None:
    codec = DwarfWireCodec()
    buf = ByteAccumulator(RESPONSE_MAGIC_HDR + b"\x01\x02")
    assert codec.decode(buf) is NOT_READY
    assert codec.shook_hands
    assert buf.view == b"\x01\x02"


def test_handshake_then_frame_in_same_call() -> None:
    codec = DwarfWireCodec()
    buf = ByteAccumulator(RESPONSE_MAGIC_HDR + result_frame(b"ok"))
    res = codec.decode(buf)
    assert isinstance(res, Reply)
    assert res.reply.result == DwarfMessage(id=RpcId.RESULT, data=b"ok")
    assert len(buf) == 0


def test_bad_handshake_is_fatal() -> None:
    codec = DwarfWireCodec()
    buf = ByteAccumulator(REQUEST_MAGIC_HDR)  # wrong direction magic
    res = codec.decode(buf)
    assert isinstance(res, FatalError)
    assert res.code == "handshake_invalid"
    assert not codec.shook_hands


def test_handshake_state_is_not_reset_by_later_frames() -> None:
    codec = _ready_codec()
    buf = ByteAccumulator(result_frame(b"x") + RESPONSE_MAGIC_HDR)
    assert isinstance(codec.decode(buf), Reply)
    assert codec.shook_hands
    # The magic now reads as a frame header with an unknown id.
    res = codec.decode(buf)
    assert isinstance(res, RecoverableError)
    assert res.code == "illegal_reply_id"
    assert codec.shook_hands


# ---------------------------------------------------------------------
# framing
# ---------------------------------------------------------------------


@pytest.mark.parametrize("revision", list(HeaderRevision))
def test_result_round_trip(revision: HeaderRevision) -> None:
    codec = _ready_codec(revision)
    msg = DwarfMessage(id=int(RpcId.RESULT), data=b"\x00payload\xff")
    buf = ByteAccumulator(codec.encode(msg))
    res = codec.decode(buf)
    assert isinstance(res, Reply)
    assert res.reply.messages == (msg,)
    assert len(buf) == 0


def test_incomplete_frame_consumes_nothing() -> None:
    codec = _ready_codec()
    whole = result_frame(b"abcdef")
    buf = ByteAccumulator(whole[:-1])
    assert codec.decode(buf) is NOT_READY
    assert buf.view == whole[:-1]


def test_every_split_point_yields_the_same_reply() -> None:
    whole = text_frame(b"note") + result_frame(b"value")
    expected = _drain(_ready_codec(), ByteAccumulator(whole))
    assert len(expected) == 1

    for k in range(len(whole) + 1):
        codec = _ready_codec()
        buf = ByteAccumulator()
        buf.append(whole[:k])
        first = _drain(codec, buf)
        if k < len(whole):
            assert first == []
        buf.append(whole[k:])
        got = first + _drain(codec, buf)
        assert got == expected, k


def test_text_frames_coalesce_with_result() -> None:
    codec = _ready_codec()
    buf = ByteAccumulator()
    for i in range(3):
        buf.append(text_frame(f"t{i}".encode()))
        assert codec.decode(buf) is NOT_READY
        assert len(buf) == 0
    assert codec.pending_texts == 3

    buf.append(result_frame(b"done"))
    res = codec.decode(buf)
    assert isinstance(res, Reply)
    assert [m.data for m in res.reply.texts] == [b"t0", b"t1", b"t2"]
    assert res.reply.result.data == b"done"
    assert [m.id for m in res.reply.messages] == [RpcId.TEXT] * 3 + [RpcId.RESULT]
    assert codec.pending_texts == 0


def test_fail_uses_size_as_status_code() -> None:
    codec = _ready_codec()
    buf = ByteAccumulator(text_frame(b"why") + fail_frame(CommandResult.NOT_FOUND) + b"\x99")
    assert codec.decode(buf) is NOT_READY
    res = codec.decode(buf)
    assert isinstance(res, Reply)
    assert res.reply.failed
    assert res.reply.result.error_code == CommandResult.NOT_FOUND
    assert [m.data for m in res.reply.texts] == [b"why"]
    # header only; the trailing byte belongs to the next frame
    assert buf.view == b"\x99"


def test_fail_with_unknown_status_code_keeps_raw_value() -> None:
    codec = _ready_codec()
    res = codec.decode(ByteAccumulator(fail_frame(42)))
    assert isinstance(res, Reply)
    assert res.reply.result.error_code == 42


@pytest.mark.parametrize("size", [MAX_FRAME_BYTES + 1, -1])
def test_invalid_size_is_fatal(size: int) -> None:
    codec = _ready_codec()
    buf = ByteAccumulator(DwarfWireCodec().encode(DwarfMessage(id=int(RpcId.RESULT)))[:4])
    buf.append(size.to_bytes(4, "little", signed=True))
    res = codec.decode(buf)
    assert isinstance(res, FatalError)
    assert res.code == "frame_size_invalid"


def test_max_size_is_accepted_but_waits_for_body() -> None:
    codec = _ready_codec()
    buf = ByteAccumulator(frame(RpcId.RESULT, b"")[:4] + MAX_FRAME_BYTES.to_bytes(4, "little"))
    assert codec.decode(buf) is NOT_READY
    assert len(buf) == 8


def test_illegal_reply_id_is_recoverable_and_skips_header_only() -> None:
    codec = _ready_codec()
    header = frame(99)[:4] + (16).to_bytes(4, "little")
    buf = ByteAccumulator(header + result_frame(b"next"))
    res = codec.decode(buf)
    assert isinstance(res, RecoverableError)
    assert res.code == "illegal_reply_id"
    assert "99" in res.reason
    assert buf.view == result_frame(b"next")
    res = codec.decode(buf)
    assert isinstance(res, Reply)
    assert res.reply.result.data == b"next"


def test_illegal_reply_id_with_absurd_size_is_still_recoverable() -> None:
    codec = _ready_codec()
    buf = ByteAccumulator(frame(99)[:4] + (MAX_FRAME_BYTES + 1).to_bytes(4, "little"))
    res = codec.decode(buf)
    assert isinstance(res, RecoverableError)
    assert res.code == "illegal_reply_id"
    assert len(buf) == 0


def test_illegal_reply_id_does_not_drop_queued_texts() -> None:
    codec = _ready_codec()
    buf = ByteAccumulator(text_frame(b"kept") + frame(99) + result_frame(b"r"))
    results = _drain(codec, buf)
    assert isinstance(results[0], RecoverableError)
    assert isinstance(results[1], Reply)
    assert [m.data for m in results[1].reply.texts] == [b"kept"]


def test_legacy_revision_decodes_six_byte_headers() -> None:
    codec = _ready_codec(HeaderRevision.LEGACY)
    data = text_frame(b"a", HeaderRevision.LEGACY) + result_frame(b"b", HeaderRevision.LEGACY)
    got = _drain(codec, ByteAccumulator(data))
    assert len(got) == 1
    assert [m.data for m in got[0].reply.messages] == [b"a", b"b"]
