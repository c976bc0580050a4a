# marketdesk/websocket/codec.py
"""
Packet Codec
============

Outbound packets are JSON objects:

    {
        "api": "quote", "apiver": "1.0", "sn": 7, "token": "...",
        ...kind-specific top-level fields...,
        "data": {"time": "20250102093000", ...kind-specific params...}
    }

The auth packet carries the device fingerprint at the top level and no
token. Inbound frames arrive as text (plain JSON) or binary (gzip JSON).
"""

import gzip
import json
import zlib
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from marketdesk.clock import Clock

from .gateway_config import DeviceFingerprint

RC_SUCCESS = "000"
RC_TIMEOUT = "408"


class RequestKind(str, Enum):
    """Gateway API names"""
    AUTH = "auth"
    HEARTBEAT = "hb"
    QUOTE = "quote"
    TREND = "trend"
    PUSH = "push"
    SYNC = "sync"  # inbound only, unsolicited push updates


class DecodeError(ValueError):
    """Inbound frame could not be inflated or parsed"""


def format_wire_time(dt: datetime) -> str:
    """YYYYMMDDHHMMSS, the only timestamp format the gateway accepts"""
    return dt.strftime("%Y%m%d%H%M%S")


class PacketCodec:
    """Stateless encoder/decoder for gateway packets"""

    def __init__(self, clock: Clock, fingerprint: DeviceFingerprint, api_version: str = "1.0"):
        self.clock = clock
        self.fingerprint = fingerprint
        self.api_version = api_version

    def build(
        self,
        kind: str,
        sn: int,
        token: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Assemble the packet dict (exposed separately for inspection in logs and tests)"""
        kind = RequestKind(kind).value
        packet: Dict[str, Any] = {
            "api": kind,
            "apiver": self.api_version,
            "sn": sn,
        }
        if kind == RequestKind.AUTH.value:
            packet.update(self.fingerprint.as_fields())
        else:
            packet["token"] = token
        if extra:
            packet.update(extra)

        data = {"time": format_wire_time(self.clock.now())}
        if params:
            data.update(params)
        packet["data"] = data
        return packet

    def encode(self, kind: str, sn: int, token: Optional[str] = None,
               params: Optional[Dict[str, Any]] = None,
               extra: Optional[Dict[str, Any]] = None) -> str:
        return json.dumps(self.build(kind, sn, token, params, extra), separators=(",", ":"))

    @staticmethod
    def decode(raw: Union[str, bytes, bytearray]) -> Dict[str, Any]:
        """
        Turn a transport payload into a message dict.

        Raises:
            DecodeError: payload is not gzip when binary, not UTF-8, not JSON,
                or not a JSON object
        """
        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = gzip.decompress(bytes(raw)).decode("utf-8")
            except (OSError, EOFError, zlib.error) as e:
                raise DecodeError(f"binary frame is not valid gzip: {e}") from e
            except UnicodeDecodeError as e:
                raise DecodeError(f"inflated frame is not UTF-8: {e}") from e

        try:
            message = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            raise DecodeError(f"frame is not JSON: {e}") from e

        if not isinstance(message, dict):
            raise DecodeError(f"frame is a JSON {type(message).__name__}, expected object")
        return message
