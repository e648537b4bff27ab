"""Pydantic models for service discovery."""

import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BrowserState(str, Enum):
    """Lifecycle states of the discovery browser."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


class ClientIdentity(BaseModel):
    """The fields that distinguish one announced service instance from another."""
    model_config = ConfigDict(frozen=True)

    address: str
    host_name: str
    service_type: str
    name: str
    port: int


class SalaamClient(BaseModel):
    """A discovered service instance.

    Identity fields never change once the record exists; only ``message`` and
    ``last_seen`` are refreshed by later announcements. Two clients compare
    equal when their identities match, whatever their message or timestamp.
    """
    address: str
    host_name: str
    service_type: str
    name: str
    port: int
    message: str = ""
    last_seen: float = Field(default_factory=time.time)  # Unix timestamp

    @property
    def identity(self) -> ClientIdentity:
        return ClientIdentity(
            address=self.address,
            host_name=self.host_name,
            service_type=self.service_type,
            name=self.name,
            port=self.port,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SalaamClient):
            return NotImplemented
        return self.identity == other.identity

    def __hash__(self) -> int:
        return hash(self.identity)


class Announcement(BaseModel):
    """One decoded presence packet."""
    address: str
    host_name: str
    service_type: str
    name: str
    port: int
    message: str
    protocol_message: str = ""  # control code such as "EOS", empty when absent

    @property
    def identity(self) -> ClientIdentity:
        return ClientIdentity(
            address=self.address,
            host_name=self.host_name,
            service_type=self.service_type,
            name=self.name,
            port=self.port,
        )

    def to_client(self, last_seen: float) -> SalaamClient:
        return SalaamClient(
            address=self.address,
            host_name=self.host_name,
            service_type=self.service_type,
            name=self.name,
            port=self.port,
            message=self.message,
            last_seen=last_seen,
        )
