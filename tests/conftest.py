"""
Shared fixtures for the test suite.

The browser is bound to an ephemeral UDP port and given a fixed local host
so tests never depend on the machine's DNS setup or on port 54143 being
free.
"""
from __future__ import annotations

import base64
from collections import defaultdict

import pytest
import pytest_asyncio

from salaam.config import PACKET_PREFIX
from salaam.discovery.events import ALL_EVENTS
from salaam.discovery.host import LocalHost
from salaam.discovery.service import DiscoveryBrowser

LOCAL_HOST = LocalHost(host_name="myhost", addresses=frozenset({"192.168.1.10", "127.0.0.1"}))


def make_payload(
    host_name: str,
    service_type: str,
    name: str,
    port: int | str,
    message: str,
    code: str = "",
    length_delta: int = 0,
) -> str:
    """Build the inner announcement text the way an announcer would."""
    body = f"{host_name};{service_type};{name};{port};{message};"
    if code:
        body += f"<{code}>"
    return f"{len(body) + length_delta};{body}"


def wrap(payload: str) -> bytes:
    return (PACKET_PREFIX + base64.b64encode(payload.encode("utf-8")).decode("ascii")).encode("utf-8")


def make_packet(*args, **kwargs) -> bytes:
    return wrap(make_payload(*args, **kwargs))


class FakeClock:
    """Manually advanced replacement for ``time.time``."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class EventRecorder:
    """Subscribes to every browser event and keeps what it saw."""

    def __init__(self, browser: DiscoveryBrowser) -> None:
        self.calls: dict[str, list[tuple]] = defaultdict(list)
        for event in ALL_EVENTS:
            browser.on(event, self._recorder(event))

    def _recorder(self, event: str):
        def record(*args):
            self.calls[event].append(args)
        return record

    def count(self, event: str) -> int:
        return len(self.calls[event])

    def clients(self, event: str) -> list:
        return [args[0] for args in self.calls[event]]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def make_browser(clock):
    """Factory for unstarted browsers on an ephemeral port."""
    created: list[DiscoveryBrowser] = []

    def _create(**kwargs) -> DiscoveryBrowser:
        kwargs.setdefault("port", 0)
        kwargs.setdefault("resolve_host", lambda: LOCAL_HOST)
        kwargs.setdefault("clock", clock)
        browser = DiscoveryBrowser(**kwargs)
        created.append(browser)
        return browser

    yield _create
    for browser in created:
        browser.close()


@pytest_asyncio.fixture
async def browser(make_browser):
    """A running wildcard browser driven by the fake clock."""
    b = make_browser()
    assert await b.start("*")
    yield b
    b.close()


@pytest.fixture
def recorder(browser) -> EventRecorder:
    return EventRecorder(browser)
