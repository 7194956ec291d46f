"""Local network addresses for the startup banner."""

from __future__ import annotations

import socket
from typing import List

import psutil


def get_local_ips() -> List[str]:
    """Non-loopback IPv4 addresses of every network interface."""
    ips: List[str] = []
    for addresses in psutil.net_if_addrs().values():
        for address in addresses:
            if address.family != socket.AF_INET:
                continue
            if address.address.startswith("127."):
                continue
            if address.address not in ips:
                ips.append(address.address)
    return ips


def build_urls(host: str, port: int, scheme: str = "http") -> List[str]:
    """Dashboard URLs reachable for a server bound to ``host``."""
    urls = [f"{scheme}://localhost:{port}"]
    if host in ("0.0.0.0", "", "::"):
        urls.extend(f"{scheme}://{ip}:{port}" for ip in get_local_ips())
    elif host not in ("127.0.0.1", "localhost"):
        urls.append(f"{scheme}://{host}:{port}")
    return urls


__all__ = ["build_urls", "get_local_ips"]
