"""In-memory registry of discovered clients."""

import threading
import time
from enum import Enum
from typing import Callable, Optional

from salaam.config import END_OF_SESSION
from salaam.discovery.models import Announcement, ClientIdentity, SalaamClient


class Change(str, Enum):
    """Outcome of reconciling one announcement against the registry."""
    APPEARED = "appeared"
    MESSAGE_CHANGED = "message_changed"
    DISAPPEARED = "disappeared"
    REFRESHED = "refreshed"
    IGNORED = "ignored"


class ClientRegistry:
    """Clients keyed by identity, guarded by a single lock.

    Every method returns copies of the affected records so callers can fire
    notifications after the lock is released.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clients: dict[ClientIdentity, SalaamClient] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)

    def __contains__(self, identity: ClientIdentity) -> bool:
        with self._lock:
            return identity in self._clients

    def get(self, identity: ClientIdentity) -> Optional[SalaamClient]:
        with self._lock:
            client = self._clients.get(identity)
            return client.model_copy() if client else None

    def snapshot(self) -> list[SalaamClient]:
        """Return copies of all live clients."""
        with self._lock:
            return [c.model_copy() for c in self._clients.values()]

    def clear(self) -> None:
        with self._lock:
            self._clients.clear()

    def reconcile(self, announcement: Announcement) -> tuple[Change, Optional[SalaamClient]]:
        """Apply one announcement and report what changed.

        Known client without a control code: refresh ``last_seen`` and replace
        the message if it differs. Known client with ``EOS``: remove it.
        Unknown client without a control code: insert it. Unrecognized control
        codes only refresh a known client and never create one.
        """
        identity = announcement.identity
        code = announcement.protocol_message.upper()
        now = self._clock()

        with self._lock:
            client = self._clients.get(identity)

            if client is None:
                if code:
                    return Change.IGNORED, None
                client = announcement.to_client(last_seen=now)
                self._clients[identity] = client
                return Change.APPEARED, client.model_copy()

            client.last_seen = now

            if not code:
                if client.message != announcement.message:
                    client.message = announcement.message
                    return Change.MESSAGE_CHANGED, client.model_copy()
                return Change.REFRESHED, client.model_copy()

            if code == END_OF_SESSION:
                del self._clients[identity]
                return Change.DISAPPEARED, client

            return Change.REFRESHED, client.model_copy()

    def sweep(self, max_age: float) -> list[SalaamClient]:
        """Drop every client not seen for more than ``max_age`` seconds.

        The surviving set replaces the old one in a single step; the removed
        clients are returned.
        """
        now = self._clock()
        with self._lock:
            survivors: dict[ClientIdentity, SalaamClient] = {}
            expired: list[SalaamClient] = []
            for identity, client in self._clients.items():
                if now - client.last_seen > max_age:
                    expired.append(client)
                else:
                    survivors[identity] = client
            self._clients = survivors
        return expired
