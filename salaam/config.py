"""Application-wide configuration constants."""

import os


def _getenv_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


# --- Protocol ---
PACKET_PREFIX = "Salaam:"
FIELD_DELIMITER = ";"
WILDCARD_SERVICE_TYPE = "*"
END_OF_SESSION = "EOS"

# --- Networking ---
DISCOVERY_PORT = _getenv_int("SALAAM_PORT", 54143)  # UDP
RECEIVE_BUFFER_SIZE = 65535

# --- Browser ---
SERVICE_TYPE = os.getenv("SALAAM_SERVICE_TYPE", WILDCARD_SERVICE_TYPE)
DISAPPEARANCE_DELAY = _getenv_int("SALAAM_DISAPPEARANCE_DELAY", 4)  # seconds
SWEEPS_PER_DELAY = 5

# --- Local API ---
API_HOST = os.getenv("SALAAM_API_HOST", "127.0.0.1")
API_PORT = _getenv_int("SALAAM_API_PORT", 8765)
