"""Discovery module - UDP broadcast browser."""

from salaam.discovery.codec import decode
from salaam.discovery.host import LocalHost, resolve_local_host
from salaam.discovery.models import Announcement, BrowserState, ClientIdentity, SalaamClient
from salaam.discovery.registry import ClientRegistry
from salaam.discovery.service import DiscoveryBrowser

__all__ = [
    "Announcement",
    "BrowserState",
    "ClientIdentity",
    "ClientRegistry",
    "DiscoveryBrowser",
    "LocalHost",
    "SalaamClient",
    "decode",
    "resolve_local_host",
]
