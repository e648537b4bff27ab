"""Salaam: passive discovery of services announced over LAN broadcast."""

from salaam.discovery import DiscoveryBrowser, SalaamClient

__version__ = "1.0.0"

__all__ = ["DiscoveryBrowser", "SalaamClient", "__version__"]
