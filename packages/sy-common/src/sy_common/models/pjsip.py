"""
PJSIP endpoint, contact, and outbound registration models.
"""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import Field, computed_field

from sy_common.models.base import Entity, utc_now


class EndpointStatus(str, enum.Enum):
    """Availability derived from an endpoint's device state."""

    AVAILABLE = "available"
    BUSY = "busy"
    RINGING = "ringing"
    UNAVAILABLE = "unavailable"


_DEVICE_STATE_STATUS: dict[str, EndpointStatus] = {
    "NOT_INUSE": EndpointStatus.AVAILABLE,
    "INUSE": EndpointStatus.BUSY,
    "BUSY": EndpointStatus.BUSY,
    "ONHOLD": EndpointStatus.BUSY,
    "RINGING": EndpointStatus.RINGING,
    "RINGINUSE": EndpointStatus.RINGING,
    "UNAVAILABLE": EndpointStatus.UNAVAILABLE,
    "INVALID": EndpointStatus.UNAVAILABLE,
    "UNKNOWN": EndpointStatus.UNAVAILABLE,
}


def status_from_device_state(device_state: str) -> EndpointStatus:
    """Map an Asterisk device state string onto an ``EndpointStatus``."""
    return _DEVICE_STATE_STATUS.get(device_state.upper(), EndpointStatus.UNAVAILABLE)


class ContactStatus(str, enum.Enum):
    """Reachability of a registered contact."""

    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"
    UNKNOWN = "unknown"


class Endpoint(Entity):
    """A PJSIP endpoint.

    Attributes:
        id: Endpoint name.
        device_state: Raw device state (``NOT_INUSE``, ``INUSE``, ...).
        transport: Transport the endpoint is bound to.
        aor: Address-of-record names.
        active_channels: Number of channels currently up.
        contacts: Ids of the contacts registered for this endpoint.
        updated_at: Last time the endpoint changed (UTC).
    """

    device_state: str = Field(default="UNKNOWN", description="Raw device state.")
    transport: str = Field(default="", description="Bound transport.")
    aor: str = Field(default="", description="Address-of-record names.")
    active_channels: int = Field(default=0, ge=0, description="Channels currently up.")
    contacts: frozenset[str] = Field(default_factory=frozenset, description="Contact ids.")
    updated_at: datetime = Field(default_factory=utc_now, description="Last change (UTC).")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> EndpointStatus:
        """Availability derived from ``device_state``."""
        return status_from_device_state(self.device_state)


class Contact(Entity):
    """A registered contact URI belonging to exactly one endpoint.

    Attributes:
        id: Contact URI.
        endpoint_id: Owning endpoint name.
        aor: Address-of-record the contact is bound to.
        status: Qualify reachability.
        round_trip_time_ms: Last qualify round trip in milliseconds.
        expires_at: Registration expiry (UTC).
        user_agent: Registering user agent.
    """

    endpoint_id: str = Field(default="", description="Owning endpoint name.")
    aor: str = Field(default="", description="Address-of-record.")
    status: ContactStatus = Field(default=ContactStatus.UNKNOWN, description="Reachability.")
    round_trip_time_ms: float | None = Field(default=None, ge=0.0, description="Qualify RTT.")
    expires_at: datetime | None = Field(default=None, description="Registration expiry.")
    user_agent: str = Field(default="", description="Registering user agent.")


class RegistrationStatus(str, enum.Enum):
    """State of an outbound registration."""

    REGISTERED = "registered"
    UNREGISTERED = "unregistered"
    REJECTED = "rejected"


class OutboundRegistration(Entity):
    """An outbound registration towards an upstream registrar.

    Attributes:
        id: Registration object name.
        server_uri: Registrar URI.
        client_uri: Address of record being registered.
        status: Current registration status.
        expiration: Requested expiration in seconds.
    """

    server_uri: str = Field(default="", description="Registrar URI.")
    client_uri: str = Field(default="", description="Registered address of record.")
    status: RegistrationStatus = Field(
        default=RegistrationStatus.UNREGISTERED,
        description="Current registration status.",
    )
    expiration: int = Field(default=3600, ge=0, description="Expiration in seconds.")
