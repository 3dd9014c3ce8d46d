from __future__ import annotations

import struct
import zlib

import pytest

from pytuyastub._constants import MAX_PAYLOAD_LENGTH, PREFIX, PREFIX_BYTES, SUFFIX, SUFFIX_BYTES
from pytuyastub._protocol.frame import pack_frame, parse_header, unpack_frame
from pytuyastub.codec import FrameCodec
from pytuyastub.config import DeviceIdentity
from pytuyastub.exceptions import ChecksumError, DecryptionError, MalformedFrameError
from pytuyastub.models import CommandType, TuyaMessage

DEVICE_ID = "dev123"
LOCAL_KEY = "0123456789abcdef"


def _codec(key: str = LOCAL_KEY) -> FrameCodec:
    return FrameCodec(DeviceIdentity(device_id=DEVICE_ID, local_key=key))


QUERY = TuyaMessage(command=CommandType.DP_QUERY, seqno=5, data={"gwId": DEVICE_ID, "devId": DEVICE_ID})
CONTROL = TuyaMessage(
    command=CommandType.CONTROL,
    seqno=7,
    data={"devId": DEVICE_ID, "uid": "", "t": 1700000000, "dps": {"1": True}},
)
HEARTBEAT = TuyaMessage(command=CommandType.HEARTBEAT, seqno=3)
ACK = TuyaMessage(command=CommandType.CONTROL, seqno=7, retcode=0)
STATUS = TuyaMessage(
    command=CommandType.STATUS,
    seqno=0,
    retcode=0,
    data={"devId": DEVICE_ID, "dps": {"1": True, "2": True}, "t": 1700000000},
)
QUERY_RESPONSE = TuyaMessage(
    command=CommandType.DP_QUERY,
    seqno=5,
    retcode=0,
    data={"devId": DEVICE_ID, "gwId": DEVICE_ID, "dps": {"1": False, "2": True, "101": "auto", "3": 12.5}},
)


# ------------------------------------------------------------------
# Layout
# ------------------------------------------------------------------


def test_heartbeat_frame_layout() -> None:
    frame = _codec().encode(HEARTBEAT)

    assert len(frame) == 24
    prefix, seqno, command, length = struct.unpack(">4I", frame[:16])
    assert (prefix, seqno, command, length) == (PREFIX, 3, 9, 8)
    assert frame.endswith(SUFFIX_BYTES)


def test_length_counts_retcode_payload_and_trailer() -> None:
    frame = _codec().encode(QUERY_RESPONSE)
    _prefix, _seqno, _command, length = struct.unpack(">4I", frame[:16])

    assert length == len(frame) - 16
    assert frame[16:20] == b"\x00\x00\x00\x00"


def test_checksum_covers_header_and_payload() -> None:
    frame = pack_frame(CommandType.DP_QUERY, 1, b'{"devId":"dev123"}')
    (crc,) = struct.unpack(">I", frame[-8:-4])
    assert crc == zlib.crc32(frame[:-8])


def test_query_payload_is_plain_json() -> None:
    frame = _codec().encode(QUERY)
    assert b'{"gwId":"dev123","devId":"dev123"}' in frame


def test_control_payload_is_encrypted() -> None:
    frame = _codec().encode(CONTROL)
    payload = frame[16:-8]

    assert payload.startswith(b"3.1")
    assert b"dev123" not in frame


def test_empty_data_encodes_as_empty_payload() -> None:
    message = TuyaMessage(command=CommandType.HEARTBEAT, seqno=1, data={})
    assert message.data is None
    assert len(_codec().encode(message)) == 24


# ------------------------------------------------------------------
# Round trip
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "message",
    [QUERY, CONTROL, HEARTBEAT, ACK, STATUS, QUERY_RESPONSE],
    ids=["query", "control", "heartbeat", "ack", "status", "query-response"],
)
def test_decode_inverts_encode(message: TuyaMessage) -> None:
    codec = _codec()
    results, remaining = codec.decode(codec.encode(message))

    assert results == [message]
    assert remaining == b""


def test_unknown_command_round_trips() -> None:
    codec = _codec()
    message = TuyaMessage(command=0x12, seqno=42, data={"dps": {"1": 1}})

    decoded = codec.decode_frame(codec.encode(message))
    assert decoded == message
    assert decoded.command_type is None


# ------------------------------------------------------------------
# Stream robustness
# ------------------------------------------------------------------


@pytest.mark.parametrize("message", [QUERY, CONTROL, HEARTBEAT], ids=["query", "control", "heartbeat"])
def test_split_at_every_boundary(message: TuyaMessage) -> None:
    codec = _codec()
    frame = codec.encode(message)

    for split in range(1, len(frame)):
        decoder = codec.decoder()
        first = decoder.feed(frame[:split])
        second = decoder.feed(frame[split:])

        assert first == [], f"split={split}"
        assert second == [message], f"split={split}"
        assert decoder.pending == b""


def test_byte_by_byte_delivery() -> None:
    codec = _codec()
    frame = codec.encode(CONTROL)
    decoder = codec.decoder()

    results = []
    for i in range(len(frame)):
        results.extend(decoder.feed(frame[i : i + 1]))
    assert results == [CONTROL]


def test_merged_frames_decode_in_order() -> None:
    codec = _codec()
    results, remaining = codec.decode(codec.encode(QUERY) + codec.encode(CONTROL) + codec.encode(HEARTBEAT))

    assert results == [QUERY, CONTROL, HEARTBEAT]
    assert remaining == b""


def test_merged_frame_with_trailing_partial() -> None:
    codec = _codec()
    second = codec.encode(CONTROL)
    results, remaining = codec.decode(codec.encode(QUERY) + second[:10])

    assert results == [QUERY]
    assert remaining == second[:10]

    results, remaining = codec.decode(second[10:], carryover=remaining)
    assert results == [CONTROL]
    assert remaining == b""


def test_noise_before_prefix_is_discarded() -> None:
    codec = _codec()
    decoder = codec.decoder()

    assert decoder.feed(b"\xde\xad\xbe\xef garbage") == []
    assert decoder.pending == b""
    assert decoder.feed(b"more" + codec.encode(HEARTBEAT)) == [HEARTBEAT]


def test_partial_prefix_is_retained() -> None:
    codec = _codec()
    frame = codec.encode(HEARTBEAT)
    decoder = codec.decoder()

    assert decoder.feed(b"noise" + frame[:3]) == []
    assert decoder.pending == frame[:3]
    assert decoder.feed(frame[3:]) == [HEARTBEAT]


def test_reset_drops_partial_frame() -> None:
    codec = _codec()
    decoder = codec.decoder()
    decoder.feed(codec.encode(QUERY)[:20])

    decoder.reset()

    assert decoder.pending == b""
    assert decoder.feed(codec.encode(HEARTBEAT)) == [HEARTBEAT]


# ------------------------------------------------------------------
# Integrity and validation
# ------------------------------------------------------------------


def test_flipped_payload_byte_raises_checksum_error() -> None:
    codec = _codec()
    frame = codec.encode(QUERY)

    for index in range(16, len(frame) - 8):
        tampered = bytearray(frame)
        tampered[index] ^= 0x01
        with pytest.raises(ChecksumError) as exc_info:
            codec.decode_frame(bytes(tampered))
        assert exc_info.value.seqno == 5


def test_tampered_frame_does_not_affect_following_frames() -> None:
    codec = _codec()
    tampered = bytearray(codec.encode(CONTROL))
    tampered[30] ^= 0xFF

    results, remaining = codec.decode(bytes(tampered) + codec.encode(HEARTBEAT) + codec.encode(QUERY))

    assert isinstance(results[0], ChecksumError)
    assert results[1:] == [HEARTBEAT, QUERY]
    assert remaining == b""


def test_bad_suffix_is_malformed() -> None:
    codec = _codec()
    frame = bytearray(codec.encode(HEARTBEAT))
    frame[-1] = 0x00

    results, _ = codec.decode(bytes(frame) + codec.encode(QUERY))
    assert isinstance(results[0], MalformedFrameError)
    assert results[1] == QUERY


def test_oversized_length_is_rejected_and_stream_resyncs() -> None:
    codec = _codec()
    bogus = struct.pack(">4I", PREFIX, 1, CommandType.DP_QUERY, MAX_PAYLOAD_LENGTH + 100)
    decoder = codec.decoder()

    results = decoder.feed(bogus + codec.encode(HEARTBEAT))

    assert isinstance(results[0], MalformedFrameError)
    assert "exceeds maximum" in str(results[0])
    assert results[1:] == [HEARTBEAT]


def test_length_shorter_than_trailer_is_rejected() -> None:
    header = struct.pack(">4I", PREFIX, 1, CommandType.HEARTBEAT, 4)
    with pytest.raises(MalformedFrameError, match="shorter than the trailer"):
        parse_header(header)


def test_parse_header_requires_prefix() -> None:
    with pytest.raises(MalformedFrameError, match="Bad prefix"):
        parse_header(b"\x00" * 16)


def test_unpack_frame_rejects_truncated_frame() -> None:
    frame = pack_frame(CommandType.HEARTBEAT, 1, b"")
    with pytest.raises(MalformedFrameError, match="truncated"):
        unpack_frame(frame[:-1])


def test_pack_frame_rejects_oversized_payload() -> None:
    with pytest.raises(MalformedFrameError):
        pack_frame(CommandType.DP_QUERY, 1, b"x" * (MAX_PAYLOAD_LENGTH + 1))


def test_retcode_detection() -> None:
    with_retcode = pack_frame(CommandType.DP_QUERY, 1, b"{}", retcode=1)
    without_retcode = pack_frame(CommandType.DP_QUERY, 1, b"{}")

    assert unpack_frame(with_retcode)[1:] == (1, b"{}")
    assert unpack_frame(without_retcode)[1:] == (None, b"{}")


def test_cleartext_control_is_malformed() -> None:
    codec = _codec()
    frame = pack_frame(CommandType.CONTROL, 9, b'{"devId":"dev123","dps":{"1":true}}')

    with pytest.raises(MalformedFrameError, match="version tag") as exc_info:
        codec.decode_frame(frame)
    assert exc_info.value.seqno == 9
    assert exc_info.value.command == CommandType.CONTROL


def test_wrong_key_fails_signature_check() -> None:
    frame = _codec().encode(CONTROL)

    with pytest.raises(DecryptionError, match="signature"):
        _codec("fedcba9876543210").decode_frame(frame)


def test_non_object_json_is_malformed() -> None:
    frame = pack_frame(CommandType.DP_QUERY, 2, b"[1, 2, 3]")
    with pytest.raises(MalformedFrameError, match="JSON object"):
        _codec().decode_frame(frame)


def test_invalid_json_is_malformed() -> None:
    frame = pack_frame(CommandType.DP_QUERY, 2, b"{not json")
    with pytest.raises(MalformedFrameError, match="not valid JSON"):
        _codec().decode_frame(frame)


def test_prefix_and_suffix_constants() -> None:
    assert PREFIX_BYTES == b"\x00\x00\x55\xaa"
    assert SUFFIX.to_bytes(4, "big") == b"\x00\x00\xaa\x55"
