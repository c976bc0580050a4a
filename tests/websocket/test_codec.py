import gzip
import json
import pytest

from marketdesk.websocket.codec import PacketCodec, DecodeError, format_wire_time
from marketdesk.websocket.gateway_config import DeviceFingerprint


@pytest.fixture
def codec(replay_clock):
    return PacketCodec(replay_clock, DeviceFingerprint(), api_version="1.0")


def test_wire_time_format(replay_clock):
    assert format_wire_time(replay_clock.now()) == "20250102093000"


def test_quote_packet_envelope(codec):
    packet = json.loads(codec.encode("quote", 7, "T1", {"qtype": "US", "codes": ["AAPL.US"]}))

    assert packet["api"] == "quote"
    assert packet["apiver"] == "1.0"
    assert packet["sn"] == 7
    assert packet["token"] == "T1"
    assert packet["data"] == {"time": "20250102093000", "qtype": "US", "codes": ["AAPL.US"]}
    assert "pid" not in packet


def test_extra_fields_go_to_top_level(codec):
    packet = codec.build("push", 3, "T1", {"codes": ["NVDA.US"]}, extra={"px": "1"})
    assert packet["px"] == "1"
    assert "px" not in packet["data"]


def test_auth_packet_has_fingerprint_and_no_token(codec):
    packet = codec.build("auth", 1, token="ignored", params={"auth_key": "", "US": "r"})

    assert "token" not in packet
    assert packet["pid"] == "SNPW"
    assert packet["platform"] == "WEB"
    assert packet["uid"] == "GUEST_USER"
    assert packet["data"]["US"] == "r"
    assert packet["sn"] == 1


def test_heartbeat_carries_only_time(codec):
    packet = codec.build("hb", 4, "T1")
    assert packet["data"] == {"time": "20250102093000"}
    assert packet["token"] == "T1"


def test_unknown_kind_rejected(codec):
    with pytest.raises(ValueError):
        codec.encode("orders", 1, "T1")


def test_decode_text_frame():
    message = PacketCodec.decode('{"api": "sync", "data": {"code": "AAPL.US"}}')
    assert message["api"] == "sync"


def test_decode_gzip_frame():
    raw = gzip.compress(json.dumps({"api": "quote", "sn": 2, "data": {"rc": "000"}}).encode("utf-8"))
    message = PacketCodec.decode(raw)
    assert message["sn"] == 2
    assert message["data"]["rc"] == "000"


def test_decode_bytearray_frame():
    raw = bytearray(gzip.compress(b'{"api": "hb"}'))
    assert PacketCodec.decode(raw) == {"api": "hb"}


@pytest.mark.parametrize("raw", [
    b"definitely not gzip",
    gzip.compress(b"\xff\xfe\xfa"),
    gzip.compress(b"{broken json"),
    "not json at all",
    "[1, 2, 3]",
])
def test_decode_failures_raise_decode_error(raw):
    with pytest.raises(DecodeError):
        PacketCodec.decode(raw)


def test_truncated_gzip_is_decode_error():
    raw = gzip.compress(b'{"api": "quote"}')[:-6]
    with pytest.raises(DecodeError):
        PacketCodec.decode(raw)
