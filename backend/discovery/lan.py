"""Best-effort discovery of this machine's private LAN IPv4 address."""

import ipaddress
import logging
import socket

import psutil

logger = logging.getLogger(__name__)

PRIVATE_NETWORKS = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),  # link-local
]


def is_private_ipv4(ip: str) -> bool:
    try:
        addr = ipaddress.IPv4Address(ip)
    except ValueError:
        return False
    return any(addr in net for net in PRIVATE_NETWORKS)


def local_lan_ipv4() -> str:
    """
    Return the first private IPv4 address of an up, non-loopback interface.

    Interfaces are visited in enumeration order, then their addresses. Returns
    "" when nothing matches or the enumeration itself fails.
    """
    try:
        stats = psutil.net_if_stats()
        if_addrs = psutil.net_if_addrs()
    except Exception as e:
        logger.debug(f"Interface enumeration failed: {e}")
        return ""

    for name, addrs in if_addrs.items():
        st = stats.get(name)
        if st is None or not st.isup:
            continue
        if "loopback" in getattr(st, "flags", ""):
            continue
        for addr in addrs:
            if addr.family != socket.AF_INET:
                continue
            ip = addr.address
            if ip.startswith("127."):
                continue
            if is_private_ipv4(ip):
                return ip
    return ""
