"""
Decoder for Salaam presence packets.

A packet is UTF-8 text of the form ``Salaam:<base64>``. The base64 body
decodes to::

    <length>;<hostName>;<serviceType>;<name>;<port>;<message>;[<CODE>]

where ``length`` counts every character after ``<length>;`` and the optional
``<CODE>`` is a bracketed control code such as ``<EOS>``. Anything that does
not satisfy both layers is rejected with ``None``; the discovery port is
shared with foreign traffic, so rejection is routine and never raised.
"""

import base64
import binascii
import logging
import re
from typing import Optional

from salaam.config import FIELD_DELIMITER, PACKET_PREFIX
from salaam.discovery.models import Announcement

logger = logging.getLogger(__name__)

ENVELOPE_RE = re.compile(
    re.escape(PACKET_PREFIX)
    + r"(?P<body>(?:[A-Za-z0-9+/]{4})*(?:[A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=)?)"
)

PAYLOAD_RE = re.compile(
    r"(?P<length>[0-9]+);"
    r"(?P<host_name>.*?);"
    r"(?P<service_type>.*?);"
    r"(?P<name>.*?);"
    r"(?P<port>[0-9]+);"
    r"(?P<message>.*?);"
    r"(?:<(?P<protocol_message>[A-Z][A-Z0-9]{2,3})>)?"
)


def unwrap_envelope(data: bytes) -> Optional[str]:
    """Return the decoded inner payload text, or None if the envelope is invalid."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return None

    match = ENVELOPE_RE.fullmatch(text)
    if match is None:
        return None

    try:
        return base64.b64decode(match.group("body"), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None


def has_valid_length(payload: str, declared: int) -> bool:
    """Check the self-reported length against everything after ``<length>;``."""
    return declared == len(payload) - (len(str(declared)) + len(FIELD_DELIMITER))


def parse_payload(payload: str, address: str) -> Optional[Announcement]:
    """Parse the inner payload text into an Announcement."""
    match = PAYLOAD_RE.fullmatch(payload)
    if match is None:
        return None

    try:
        declared = int(match.group("length"))
        port = int(match.group("port"))
    except ValueError:
        return None

    if not has_valid_length(payload, declared):
        return None

    return Announcement(
        address=address,
        host_name=match.group("host_name"),
        service_type=match.group("service_type"),
        name=match.group("name"),
        port=port,
        message=match.group("message"),
        protocol_message=match.group("protocol_message") or "",
    )


def decode(data: bytes, address: str) -> Optional[Announcement]:
    """Validate and decode one datagram received from ``address``."""
    payload = unwrap_envelope(data)
    if payload is None:
        logger.debug(f"Ignoring packet with invalid envelope from {address}")
        return None

    announcement = parse_payload(payload, address)
    if announcement is None:
        logger.debug(f"Ignoring packet with invalid payload from {address}")
    return announcement
