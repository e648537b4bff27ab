"""Local host name and address lookup."""

import ipaddress
import logging
import socket
from typing import Callable, NamedTuple

logger = logging.getLogger(__name__)


class LocalHost(NamedTuple):
    """Snapshot of the local host taken when the browser starts."""
    host_name: str
    addresses: frozenset[str]


HostResolver = Callable[[], LocalHost]


def resolve_local_host() -> LocalHost:
    """Return the local host name and every address bound to it.

    Raises OSError (``socket.gaierror``) when the name cannot be resolved.
    """
    host_name = socket.gethostname()
    addresses: set[str] = set()
    for fam, _, _, _, sockaddr in socket.getaddrinfo(host_name, None):
        if fam in (socket.AF_INET, socket.AF_INET6):
            addresses.add(normalize_address(sockaddr[0]))
    logger.debug(f"Local host {host_name} has addresses {sorted(addresses)}")
    return LocalHost(host_name=host_name, addresses=frozenset(addresses))


def normalize_address(address: str) -> str:
    # Strip IPv6 scope ids and unwrap v4-mapped addresses so they compare
    # equal to the sender addresses reported by the socket.
    address = address.split("%", 1)[0]
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return address
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped:
        return str(ip.ipv4_mapped)
    return str(ip)
