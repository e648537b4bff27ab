"""Tests for ClientRegistry reconciliation and expiry."""
from __future__ import annotations

from salaam.discovery.models import Announcement, SalaamClient
from salaam.discovery.registry import Change, ClientRegistry
from tests.conftest import FakeClock


def announce(message: str = "hi", code: str = "", **overrides) -> Announcement:
    fields = dict(
        address="10.0.0.7",
        host_name="host",
        service_type="chat",
        name="alice",
        port=5000,
        message=message,
        protocol_message=code,
    )
    fields.update(overrides)
    return Announcement(**fields)


def test_new_client_is_inserted_with_timestamp() -> None:
    clock = FakeClock(42.0)
    registry = ClientRegistry(clock=clock)

    change, client = registry.reconcile(announce())

    assert change is Change.APPEARED
    assert client.last_seen == 42.0
    assert len(registry) == 1
    assert announce().identity in registry


def test_repeated_announcement_refreshes_only() -> None:
    clock = FakeClock()
    registry = ClientRegistry(clock=clock)
    registry.reconcile(announce())

    clock.advance(1.5)
    change, client = registry.reconcile(announce())

    assert change is Change.REFRESHED
    assert client.last_seen == clock.now
    assert len(registry) == 1


def test_changed_message_is_stored() -> None:
    registry = ClientRegistry(clock=FakeClock())
    registry.reconcile(announce("hi"))

    change, client = registry.reconcile(announce("away"))

    assert change is Change.MESSAGE_CHANGED
    assert client.message == "away"
    assert registry.get(announce().identity).message == "away"


def test_identity_ignores_message_and_timestamp() -> None:
    a = SalaamClient(address="1.1.1.1", host_name="h", service_type="t", name="n", port=1, message="x", last_seen=1)
    b = SalaamClient(address="1.1.1.1", host_name="h", service_type="t", name="n", port=1, message="y", last_seen=2)
    c = SalaamClient(address="1.1.1.1", host_name="h", service_type="t", name="n", port=2, message="x", last_seen=1)

    assert a == b
    assert hash(a) == hash(b)
    assert a != c


def test_distinct_identities_are_tracked_separately() -> None:
    registry = ClientRegistry(clock=FakeClock())
    registry.reconcile(announce())
    registry.reconcile(announce(port=5001))
    registry.reconcile(announce(address="10.0.0.8"))
    registry.reconcile(announce(service_type="Chat"))
    registry.reconcile(announce())

    assert len(registry) == 4


def test_end_of_session_removes_known_client() -> None:
    registry = ClientRegistry(clock=FakeClock())
    registry.reconcile(announce())

    change, client = registry.reconcile(announce("bye", code="eos"))

    assert change is Change.DISAPPEARED
    assert client.name == "alice"
    assert len(registry) == 0


def test_end_of_session_for_unknown_client_is_ignored() -> None:
    registry = ClientRegistry(clock=FakeClock())

    change, client = registry.reconcile(announce(code="EOS"))

    assert change is Change.IGNORED
    assert client is None
    assert len(registry) == 0


def test_unknown_code_leaves_client_in_place() -> None:
    clock = FakeClock()
    registry = ClientRegistry(clock=clock)
    registry.reconcile(announce("hi"))
    clock.advance(2)

    change, client = registry.reconcile(announce("other", code="PING"))

    assert change is Change.REFRESHED
    assert client.message == "hi"
    assert client.last_seen == clock.now

    change, _ = registry.reconcile(announce(code="PING", port=9))
    assert change is Change.IGNORED
    assert len(registry) == 1


def test_sweep_drops_only_expired_clients() -> None:
    clock = FakeClock()
    registry = ClientRegistry(clock=clock)
    registry.reconcile(announce(name="old"))
    clock.advance(3)
    registry.reconcile(announce(name="fresh"))
    clock.advance(2)

    expired = registry.sweep(4)

    assert [c.name for c in expired] == ["old"]
    assert [c.name for c in registry.snapshot()] == ["fresh"]
    assert registry.sweep(4) == []


def test_sweep_keeps_client_exactly_at_limit() -> None:
    clock = FakeClock()
    registry = ClientRegistry(clock=clock)
    registry.reconcile(announce())
    clock.advance(4)

    assert registry.sweep(4) == []
    assert len(registry) == 1


def test_snapshot_returns_copies() -> None:
    registry = ClientRegistry(clock=FakeClock())
    registry.reconcile(announce("hi"))

    registry.snapshot()[0].message = "tampered"

    assert registry.snapshot()[0].message == "hi"
