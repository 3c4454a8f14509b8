"""Application-wide configuration constants."""

import os
from pathlib import Path

# --- Identity ---
APP_ID = "snes-online-rendezvous-v1"
APP_VERSION = "1.0.0"

# --- Service ---
API_HOST = os.environ.get("SNO_API_HOST", "127.0.0.1")
API_PORT = int(os.environ.get("SNO_API_PORT", "8766"))
LOG_LEVEL = os.environ.get("SNO_LOG_LEVEL", "INFO").upper()

# --- Netplay ---
DEFAULT_LOCAL_PORT = 7000  # UDP port the native session binds
INVITE_SCHEME = os.environ.get("SNO_INVITE_SCHEME", "snesonline")
STATUS_POLL_INTERVAL = 0.1  # seconds between native status polls

# --- STUN ---
STUN_SERVERS = [
    ("stun.cloudflare.com", 3478),
    ("stun.l.google.com", 19302),
    ("global.stun.twilio.com", 3478),
]
STUN_TIMEOUT = 1.2  # seconds per server

# --- Room server ---
DEFAULT_ROOM_SERVER_URL = os.environ.get(
    "SNO_ROOM_SERVER_URL", "https://snes-online-1hgm.onrender.com"
)
ROOM_POLL_INTERVAL = 0.25  # seconds
ROOM_POLL_DEADLINE = 15.0  # seconds before a joiner gives up on the host
HTTP_CONNECT_TIMEOUT = 4.0
HTTP_READ_TIMEOUT = 6.0

# --- Native session layer ---
NATIVE_LIB_PATH = os.environ.get("SNO_NATIVE_LIB", "")
CORE_PATH = os.environ.get("SNO_CORE_PATH", "")

# --- Storage ---
CONFIG_DIR = Path(
    os.environ.get("SNO_CONFIG_DIR", str(Path.home() / ".snes-online"))
)
os.makedirs(CONFIG_DIR, exist_ok=True)
SESSION_FILE = CONFIG_DIR / "session.json"
