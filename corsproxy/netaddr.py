"""Private/loopback classification of literal IP hosts (SSRF screening, no DNS)."""
import ipaddress
import re
import socket
from typing import Optional, Tuple, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

# Shorthand IPv4 spellings the system resolver parses locally: 2130706433, 127.1, 0x7f000001, 0177.0.0.1.
_NUMERIC_V4 = re.compile(r"^(0[xX][0-9a-fA-F]*|[0-9]+)(\.(0[xX][0-9a-fA-F]*|[0-9]+)){0,3}\.?$")


def _parse_numeric_v4(candidate: str) -> Optional[ipaddress.IPv4Address]:
    if not _NUMERIC_V4.match(candidate):
        return None
    try:
        return ipaddress.IPv4Address(socket.inet_aton(candidate.rstrip(".")))
    except OSError:
        return None


def _parse_ip(host: str) -> Optional[IPAddress]:
    candidate = host.strip()
    if ":" in candidate:
        # Bare IPv6 first, then strip brackets and/or a trailing :port.
        try:
            return ipaddress.ip_address(candidate)
        except ValueError:
            pass
        if candidate.startswith("["):
            candidate = candidate[1:].split("]", 1)[0]
        else:
            candidate = candidate.rsplit(":", 1)[0]
    try:
        return ipaddress.ip_address(candidate)
    except ValueError:
        return _parse_numeric_v4(candidate)


def is_private_addr(host: str) -> Tuple[bool, bool]:
    """
    Return (private, parsed) for host ("addr" or "addr:port").
    parsed is False when host is a name rather than an IP literal; names are never private here.
    """
    addr = _parse_ip(host)
    if addr is None:
        return False, False
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped
    return bool(addr.is_private or addr.is_loopback or addr.is_link_local), True
