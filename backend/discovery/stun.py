"""
STUN (RFC 5389) binding client.

Discovers the public, NAT-mapped UDP endpoint of a socket bound to a given
local port. Symmetric NATs map per destination, so the result is only a hint
of what a peer will see.
"""

import logging
import os
import socket
import struct
import time

from codec.endpoint import Endpoint, EndpointError, make_endpoint
from config import STUN_SERVERS, STUN_TIMEOUT

logger = logging.getLogger(__name__)

MAGIC_COOKIE = 0x2112A442
BINDING_REQUEST = 0x0001
BINDING_SUCCESS = 0x0101
ATTR_MAPPED_ADDRESS = 0x0001
ATTR_XOR_MAPPED_ADDRESS = 0x0020

FAMILY_IPV4 = 0x01
FAMILY_IPV6 = 0x02
HEADER_SIZE = 20


class DiscoveryError(RuntimeError):
    """Public endpoint discovery failed or returned an unusable mapping."""


def build_binding_request() -> tuple[bytes, bytes]:
    """Return (request, transaction_id)."""
    transaction_id = os.urandom(12)
    header = struct.pack("!HHI12s", BINDING_REQUEST, 0, MAGIC_COOKIE, transaction_id)
    return header, transaction_id


def _decode_address(attr_type: int, value: bytes, transaction_id: bytes) -> Endpoint | None:
    if len(value) < 8:
        return None
    family = value[1]
    port = struct.unpack("!H", value[2:4])[0]
    raw = value[4:]

    if attr_type == ATTR_XOR_MAPPED_ADDRESS:
        port ^= MAGIC_COOKIE >> 16
        mask = struct.pack("!I", MAGIC_COOKIE) + transaction_id
        raw = bytes(a ^ b for a, b in zip(raw, mask))

    try:
        if family == FAMILY_IPV4:
            host = socket.inet_ntop(socket.AF_INET, raw[:4])
        elif family == FAMILY_IPV6 and len(raw) >= 16:
            host = socket.inet_ntop(socket.AF_INET6, raw[:16])
        else:
            return None
        return make_endpoint(host, port)
    except (OSError, ValueError, EndpointError):
        return None


def parse_binding_response(data: bytes, transaction_id: bytes) -> Endpoint | None:
    """
    Extract the mapped endpoint from a Binding Success response.

    XOR-MAPPED-ADDRESS wins over MAPPED-ADDRESS when both are present.
    """
    if len(data) < HEADER_SIZE:
        return None
    msg_type, length, cookie = struct.unpack("!HHI", data[:8])
    if msg_type != BINDING_SUCCESS or cookie != MAGIC_COOKIE:
        return None
    if data[8:20] != transaction_id:
        return None

    mapped = None
    offset = HEADER_SIZE
    end = min(HEADER_SIZE + length, len(data))
    while offset + 4 <= end:
        attr_type, attr_len = struct.unpack("!HH", data[offset:offset + 4])
        offset += 4
        value = data[offset:offset + attr_len]
        offset += attr_len + (4 - attr_len % 4) % 4

        if attr_type == ATTR_XOR_MAPPED_ADDRESS:
            xor_mapped = _decode_address(attr_type, value, transaction_id)
            if xor_mapped is not None:
                return xor_mapped
        elif attr_type == ATTR_MAPPED_ADDRESS and mapped is None:
            mapped = _decode_address(attr_type, value, transaction_id)
    return mapped


class StunClient:
    """Tries a short list of public STUN servers until one answers."""

    def __init__(
        self,
        servers: list[tuple[str, int]] | None = None,
        timeout: float = STUN_TIMEOUT,
    ) -> None:
        self.servers = list(servers) if servers is not None else list(STUN_SERVERS)
        self.timeout = timeout

    def discover(self, local_port: int) -> Endpoint | None:
        """Blocking. Return the mapped endpoint for ``local_port`` or None."""
        for host, port in self.servers:
            try:
                mapped = self._query(host, port, local_port)
            except OSError as e:
                logger.debug(f"STUN query to {host}:{port} failed: {e}")
                continue
            if mapped is not None:
                logger.info(f"STUN {host}:{port} mapped local port {local_port} to {mapped}")
                return mapped
        logger.warning(f"STUN discovery failed for local port {local_port}")
        return None

    def mapped_address(self, local_port: int) -> str:
        """``"ip:port"`` of the public mapping, or "" on failure."""
        mapped = self.discover(local_port)
        return str(mapped) if mapped else ""

    def public_udp_port(self, local_port: int) -> int:
        """Public mapped UDP port, or 0 on failure."""
        mapped = self.discover(local_port)
        return mapped.port if mapped else 0

    def _query(self, host: str, port: int, local_port: int) -> Endpoint | None:
        server = socket.getaddrinfo(host, port, socket.AF_INET, socket.SOCK_DGRAM)[0][4]
        request, transaction_id = build_binding_request()

        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(("0.0.0.0", local_port))
            sock.sendto(request, server)

            deadline = time.monotonic() + self.timeout
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                sock.settimeout(remaining)
                try:
                    data, addr = sock.recvfrom(2048)
                except socket.timeout:
                    return None
                if addr[0] != server[0]:
                    continue
                mapped = parse_binding_response(data, transaction_id)
                if mapped is not None:
                    return mapped
