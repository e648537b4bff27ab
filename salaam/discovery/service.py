"""
UDP-based LAN discovery browser.

Listens for Salaam presence broadcasts, keeps a registry of the service
instances that announce themselves and raises events when they appear,
change their message or disappear.
"""

import asyncio
import logging
import socket
import time
from typing import Any, Callable, Optional

from salaam.config import (
    DISAPPEARANCE_DELAY,
    DISCOVERY_PORT,
    FIELD_DELIMITER,
    SERVICE_TYPE,
    SWEEPS_PER_DELAY,
    WILDCARD_SERVICE_TYPE,
)
from salaam.discovery import codec
from salaam.discovery.events import (
    BROWSER_FAILED,
    CLIENT_APPEARED,
    CLIENT_DISAPPEARED,
    CLIENT_MESSAGE_CHANGED,
    START_FAILED,
    STARTED,
    STOPPED,
    EventEmitter,
)
from salaam.discovery.host import HostResolver, LocalHost, normalize_address, resolve_local_host
from salaam.discovery.models import Announcement, BrowserState, SalaamClient
from salaam.discovery.registry import Change, ClientRegistry

logger = logging.getLogger(__name__)


class DiscoveryProtocol(asyncio.DatagramProtocol):
    """asyncio UDP protocol feeding received announcements to the browser."""

    def __init__(self, browser: "DiscoveryBrowser"):
        self.browser = browser

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        try:
            self.browser.process_datagram(data, addr[0])
        except Exception as e:
            logger.error(f"Failed to process discovery packet from {addr}: {e}", exc_info=True)

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"Discovery UDP error: {exc}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.browser._on_connection_lost(self, exc)


class DiscoveryBrowser:
    """Discovers Salaam services announced on the LAN.

    Usage::

        browser = DiscoveryBrowser()
        browser.on("client_appeared", lambda client: print(client.name))
        await browser.start("chat")
        ...
        browser.stop()

    Events ``client_appeared``, ``client_disappeared`` and
    ``client_message_changed`` receive the affected :class:`SalaamClient`;
    ``started``, ``stopped``, ``start_failed`` and ``browser_failed`` receive
    no arguments. Handlers run synchronously on the event loop thread.
    """

    def __init__(
        self,
        port: int = DISCOVERY_PORT,
        disappearance_delay: float = DISAPPEARANCE_DELAY,
        resolve_host: HostResolver = resolve_local_host,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._port = port
        self._resolve_host = resolve_host
        self._registry = ClientRegistry(clock=clock)
        self.events = EventEmitter()

        self._state = BrowserState.STOPPED
        self._closed = False
        self._transport: asyncio.DatagramTransport | None = None
        self._protocol: DiscoveryProtocol | None = None
        self._sweep_task: asyncio.Task | None = None
        self._start_task: asyncio.Task | None = None
        self._generation = 0  # bumped by every stop()

        self._service_type = SERVICE_TYPE
        self._service_type_key = SERVICE_TYPE.casefold()
        self._local_host: LocalHost | None = None

        self._receives_self_packets = True
        self._self_service_type: str | None = None
        self._self_service_port: int | None = None

        self._disappearance_delay = 0.0
        self.disappearance_delay = disappearance_delay

    # --- Configuration ---

    @property
    def state(self) -> BrowserState:
        return self._state

    @property
    def port(self) -> int:
        """The UDP port being listened on (the bound port once running)."""
        if self._transport is not None:
            sockname = self._transport.get_extra_info("sockname")
            if sockname:
                return sockname[1]
        return self._port

    @property
    def service_type(self) -> str:
        """The service type being browsed, ``*`` for all types."""
        return self._service_type

    @property
    def local_host(self) -> LocalHost | None:
        """Host name and addresses captured at the last start."""
        return self._local_host

    @property
    def disappearance_delay(self) -> float:
        """Seconds without an announcement before a client is dropped."""
        return self._disappearance_delay

    @disappearance_delay.setter
    def disappearance_delay(self, seconds: float) -> None:
        if seconds <= 0:
            raise ValueError("Disappearance delay must be positive.")
        self._disappearance_delay = seconds

    @property
    def sweep_interval(self) -> float:
        """Seconds between two expiry sweeps."""
        return self._disappearance_delay / SWEEPS_PER_DELAY

    @property
    def receives_self_packets(self) -> bool:
        return self._receives_self_packets

    def set_self_packet_receive(
        self, service_type: str, service_port: int, receive_self_packets: bool
    ) -> None:
        """Describe the local service so the browser can ignore its own packets.

        With ``receive_self_packets`` False, announcements coming from this
        host for ``service_type`` on ``service_port`` are dropped.
        """
        self._self_service_type = service_type
        self._self_service_port = service_port
        self._receives_self_packets = receive_self_packets

    @property
    def enabled(self) -> bool:
        """Whether the expiry timer is running."""
        return self._sweep_task is not None and not self._sweep_task.done()

    @enabled.setter
    def enabled(self, value: bool) -> None:
        if value:
            self._check_startable(self._service_type)
            task = asyncio.get_running_loop().create_task(self.start())
            task.add_done_callback(_log_start_failure)
            self._start_task = task
        else:
            self.stop()

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        """Register a callback for a browser event."""
        self.events.on(event, callback)

    def off(self, event: str, callback: Callable[..., Any]) -> None:
        self.events.off(event, callback)

    def clients(self) -> list[SalaamClient]:
        """Return a snapshot of the currently known clients."""
        return self._registry.snapshot()

    # --- Lifecycle ---

    async def start(self, service_type: Optional[str] = None) -> bool:
        """Start listening for announcements of ``service_type``.

        Returns True once the socket is bound. On failure ``start_failed`` is
        emitted, the browser stays stopped and False is returned. A running
        browser is stopped first.

        Raises:
            ValueError: ``service_type`` contains the field delimiter.
            RuntimeError: the browser has been closed.
        """
        if service_type is None:
            service_type = self._service_type
        self._check_startable(service_type)

        if self._state is not BrowserState.STOPPED:
            self.stop()
        generation = self._generation

        logger.info(f"Starting discovery browser for {service_type!r} on UDP port {self._port}")
        self._state = BrowserState.STARTING
        loop = asyncio.get_running_loop()
        sock: socket.socket | None = None

        try:
            self._local_host = self._resolve_host()
            self._service_type = service_type
            self._service_type_key = service_type.casefold()

            self._enable_timer()

            sock = self._create_socket()
            transport, protocol = await loop.create_datagram_endpoint(
                lambda: DiscoveryProtocol(self),
                sock=sock,
            )
        except asyncio.CancelledError:
            if sock is not None:
                sock.close()
            if generation == self._generation:
                self._disable_timer()
                self._state = BrowserState.STOPPED
            raise
        except Exception as e:
            logger.error(f"Discovery browser failed to start: {e}")
            self._disable_timer()
            if sock is not None:
                sock.close()
            self._state = BrowserState.STOPPED
            self.events.emit(START_FAILED)
            return False

        if generation != self._generation or self._closed:
            # stop() or close() ran while the socket was being set up
            logger.info("Discovery browser stopped before it finished starting")
            transport.close()
            return False

        self._transport = transport
        self._protocol = protocol
        self._state = BrowserState.RUNNING
        logger.info("Discovery browser started")
        self.events.emit(STARTED)
        return True

    def stop(self) -> None:
        """Stop listening. Safe to call at any time; always emits ``stopped``."""
        self._state = BrowserState.STOPPED
        self._generation += 1

        try:
            self._cancel_pending_start()
        except Exception as e:
            logger.debug(f"Error cancelling pending start: {e}")

        try:
            self._disable_timer()
        except Exception as e:
            logger.debug(f"Error disabling sweep timer: {e}")

        transport, self._transport = self._transport, None
        self._protocol = None
        if transport is not None:
            try:
                sock = transport.get_extra_info("socket")
                if sock is not None:
                    sock.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                # Unconnected UDP sockets report ENOTCONN here
                logger.debug(f"Error shutting down discovery socket: {e}")
            try:
                transport.close()
            except Exception as e:
                logger.debug(f"Error closing discovery socket: {e}")

        logger.info("Discovery browser stopped")
        self.events.emit(STOPPED)

    def close(self) -> None:
        """Stop the browser and release its timer. Never raises."""
        self._closed = True
        try:
            self.stop()
        except Exception as e:
            logger.debug(f"Error stopping browser during close: {e}")
        self._sweep_task = None
        self._start_task = None

    async def __aenter__(self) -> "DiscoveryBrowser":
        return self

    async def __aexit__(self, *args) -> None:
        self.close()

    def _check_startable(self, service_type: str) -> None:
        if FIELD_DELIMITER in service_type:
            raise ValueError(
                f"{FIELD_DELIMITER!r} character is not allowed in the service type."
            )
        if self._closed:
            raise RuntimeError("Cannot start a closed browser.")

    def _cancel_pending_start(self) -> None:
        task = self._start_task
        if task is None or task.done():
            self._start_task = None
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # A start() that restarts the browser calls stop() from its own task
        if task is not current:
            self._start_task = None
            task.cancel()

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            # Exclusive by default on POSIX as long as SO_REUSEADDR stays unset
            if hasattr(socket, "SO_EXCLUSIVEADDRUSE"):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_EXCLUSIVEADDRUSE, 1)
            sock.setblocking(False)
            sock.bind(("0.0.0.0", self._port))
        except OSError:
            sock.close()
            raise
        return sock

    def _on_connection_lost(self, protocol: DiscoveryProtocol, exc: Optional[Exception]) -> None:
        if protocol is not self._protocol or self._state is not BrowserState.RUNNING:
            # Closed by stop() or replaced by a restart
            return
        # The browser stays unusable until the caller stops or restarts it
        logger.warning(f"Discovery socket lost while running: {exc}")
        self.events.emit(BROWSER_FAILED)

    # --- Receive path ---

    def process_datagram(self, data: bytes, address: str) -> None:
        """Decode one datagram and apply it to the registry."""
        if self._state is not BrowserState.RUNNING:
            return

        announcement = codec.decode(data, normalize_address(address))
        if announcement is None:
            return
        if self._is_self_packet(announcement):
            logger.debug(f"Ignoring self packet for {announcement.service_type}:{announcement.port}")
            return
        if not self._accepts_service_type(announcement.service_type):
            return

        self._reconcile(announcement)

    def _is_self_packet(self, announcement: Announcement) -> bool:
        if self._receives_self_packets or self._local_host is None:
            return False
        if self._self_service_type is None:
            return False
        return (
            announcement.host_name.casefold() == self._local_host.host_name.casefold()
            and announcement.address in self._local_host.addresses
            and announcement.service_type.casefold() == self._self_service_type.casefold()
            and announcement.port == self._self_service_port
        )

    def _accepts_service_type(self, service_type: str) -> bool:
        if self._service_type == WILDCARD_SERVICE_TYPE:
            return True
        return service_type.casefold() == self._service_type_key

    def _reconcile(self, announcement: Announcement) -> None:
        change, client = self._registry.reconcile(announcement)

        if change is Change.APPEARED:
            logger.info(f"Client appeared: {client.name} ({client.address}:{client.port})")
            self.events.emit(CLIENT_APPEARED, client)
        elif change is Change.MESSAGE_CHANGED:
            logger.debug(f"Client message changed: {client.name} -> {client.message!r}")
            self.events.emit(CLIENT_MESSAGE_CHANGED, client)
        elif change is Change.DISAPPEARED:
            logger.info(f"Client ended session: {client.name} ({client.address}:{client.port})")
            self.events.emit(CLIENT_DISAPPEARED, client)

    # --- Expiry ---

    def sweep(self) -> list[SalaamClient]:
        """Drop clients that have not announced themselves within the delay."""
        expired = self._registry.sweep(self._disappearance_delay)
        for client in expired:
            logger.info(f"Client lost: {client.name} ({client.address}:{client.port})")
            self.events.emit(CLIENT_DISAPPEARED, client)
        return expired

    def _enable_timer(self) -> None:
        if not self.enabled:
            self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())

    def _disable_timer(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is not None:
            task.cancel()

    async def _sweep_loop(self) -> None:
        """Periodically remove stale clients."""
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Client sweep failed: {e}", exc_info=True)


def _log_start_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background browser start failed: {exc}", exc_info=exc)
