# marketdesk/websocket/gateway_config.py
"""
Gateway connection settings as immutable values.

The auth packet's identity block is static metadata the gateway insists
on; it lives here as configuration rather than inside handshake logic.
"""

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass(frozen=True)
class DeviceFingerprint:
    """Identity fields merged into the top level of the auth packet"""
    pid: str = "SNPW"
    app: str = "com.snp.web"
    ver: str = "1.0.0"
    platform: str = "WEB"
    device: str = "BROWSER"
    hid: str = "user-agent-browser"
    type: str = "SEC"
    uid: str = "GUEST_USER"
    platform_os: str = "WebOS"
    device_mode: str = "Browser"

    def as_fields(self) -> Dict[str, str]:
        return {
            "pid": self.pid,
            "app": self.app,
            "ver": self.ver,
            "platform": self.platform,
            "device": self.device,
            "hid": self.hid,
            "type": self.type,
            "uid": self.uid,
            "platform_os": self.platform_os,
            "device_mode": self.device_mode,
        }


@dataclass(frozen=True)
class GatewayConfig:
    """Everything the gateway client needs to know before it connects"""
    url: str = "wss://mitakerainbowuat.mtkstock.com.tw:8633/"
    api_version: str = "1.0"
    auth_key: str = ""
    market_permissions: Dict[str, str] = field(
        default_factory=lambda: {"US": "r", "HK": "n", "TW": "n"}
    )
    fingerprint: DeviceFingerprint = field(default_factory=DeviceFingerprint)
    heartbeat_interval: float = 10.0
    retry_delay: float = 1.0
    reconnect_delay: float = 3.0
    diagnostics_capacity: int = 50
    default_market: str = "US"
    timezone: str = "Asia/Taipei"

    @classmethod
    def from_settings(cls, **overrides: Any) -> 'GatewayConfig':
        """Build from config.settings, with keyword overrides taking precedence"""
        from config import settings

        values = dict(
            url=settings.GATEWAY_URL,
            api_version=settings.API_VERSION,
            auth_key=settings.AUTH_KEY,
            market_permissions=dict(settings.MARKET_PERMISSIONS),
            fingerprint=DeviceFingerprint(**settings.DEVICE_FINGERPRINT),
            heartbeat_interval=settings.HEARTBEAT_INTERVAL,
            retry_delay=settings.RETRY_DELAY,
            reconnect_delay=settings.RECONNECT_DELAY,
            diagnostics_capacity=settings.DIAGNOSTICS_CAPACITY,
            default_market=settings.DEFAULT_MARKET,
            timezone=settings.GATEWAY_TIMEZONE,
        )
        values.update(overrides)
        return cls(**values)
