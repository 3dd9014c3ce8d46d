from __future__ import annotations

from pytuyastub._protocol.payload import encrypt_envelope
from pytuyastub._redact import redact_for_log


def test_redact_for_log_masks_uid_and_local_key() -> None:
    payload = {
        "devId": "dev123",
        "uid": "user-1",
        "t": 1700000000,
        "dps": {"1": True},
        "config": {"localKey": "0123456789abcdef", "local_key": "0123456789abcdef"},
    }

    redacted = redact_for_log(payload)
    assert redacted["devId"] == "dev123"
    assert redacted["uid"] == "<redacted>"
    assert redacted["t"] == 1700000000
    assert redacted["dps"] == {"1": True}
    assert redacted["config"] == {"localKey": "<redacted>", "local_key": "<redacted>"}


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_for_log_summarizes_bytes() -> None:
    assert redact_for_log(b"\x00" * 24) == "<bytes:24b>"
    assert redact_for_log(bytearray(3)) == "<bytes:3b>"


def test_redact_for_log_hides_encrypted_envelope() -> None:
    envelope = encrypt_envelope(b'{"devId":"dev123"}', b"0123456789abcdef")

    assert redact_for_log(envelope) == f"<3.1 envelope:{len(envelope)}b>"


def test_redact_for_log_walks_lists() -> None:
    assert redact_for_log([{"uid": "u"}, b"ab", ("x",)]) == [{"uid": "<redacted>"}, "<bytes:2b>", ["x"]]
