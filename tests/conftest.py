"""Shared fixtures for the connection service tests."""

import os
import tempfile

# config.py creates CONFIG_DIR on import; keep test runs out of the home directory.
os.environ.setdefault("SNO_CONFIG_DIR", tempfile.mkdtemp(prefix="sno-test-"))

from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402

from discovery.stun import StunClient  # noqa: E402
from session.store import SessionStore  # noqa: E402

PUBLIC_ENDPOINT = "203.0.113.5:40000"
LAN_IP = "192.168.1.20"


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "session.json")


@pytest.fixture
def stun():
    """STUN client that always maps to PUBLIC_ENDPOINT."""
    client = MagicMock(spec=StunClient)
    client.mapped_address.return_value = PUBLIC_ENDPOINT
    client.public_udp_port.return_value = 40000
    return client


@pytest.fixture
def lan_ip():
    return lambda: LAN_IP
