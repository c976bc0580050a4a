"""
Global Settings
"""
import os
import json

LOG_LEVEL = os.environ.get("MARKETDESK_LOG_LEVEL", "INFO")
LOG_DIR = os.environ.get("MARKETDESK_LOG_DIR", "logs")

# Quote gateway
GATEWAY_URL = os.environ.get("GATEWAY_URL", "wss://mitakerainbowuat.mtkstock.com.tw:8633/")
GATEWAY_TIMEZONE = os.environ.get("GATEWAY_TIMEZONE", "Asia/Taipei")
API_VERSION = "1.0"
AUTH_KEY = os.environ.get("GATEWAY_AUTH_KEY", "")

HEARTBEAT_INTERVAL = float(os.environ.get("GATEWAY_HEARTBEAT_INTERVAL", "10"))
RETRY_DELAY = float(os.environ.get("GATEWAY_RETRY_DELAY", "1"))
RECONNECT_DELAY = float(os.environ.get("GATEWAY_RECONNECT_DELAY", "3"))
DIAGNOSTICS_CAPACITY = int(os.environ.get("GATEWAY_DIAGNOSTICS_CAPACITY", "50"))

DEFAULT_MARKET = "US"

# r = real-time, d = delayed, n = none
MARKET_PERMISSIONS = json.loads(
    os.environ.get("GATEWAY_MARKET_PERMISSIONS", '{"US": "r", "HK": "n", "TW": "n"}')
)

# Identity block the gateway expects on the auth packet
DEVICE_FINGERPRINT = {
    "pid": "SNPW",
    "app": "com.snp.web",
    "ver": "1.0.0",
    "platform": "WEB",
    "device": "BROWSER",
    "hid": os.environ.get("GATEWAY_DEVICE_HID", "user-agent-browser"),
    "type": "SEC",
    "uid": os.environ.get("GATEWAY_UID", "GUEST_USER"),
    "platform_os": "WebOS",
    "device_mode": "Browser",
}

# AI summarisation
GEMINI_BASE_URL = os.environ.get("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-1.5-flash")
GEMINI_TIMEOUT = float(os.environ.get("GEMINI_TIMEOUT", "30"))

# Backend
FEED_AUTOSTART = os.environ.get("FEED_AUTOSTART", "1") not in ("0", "false", "False")
CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:8000",
    "http://127.0.0.1:8000",
]
