"""
Shared Pydantic data models for Switchyard.

This package contains every entity the synchronizer keeps in sync:
conference rooms and participants, PJSIP endpoints and contacts,
voicemail boxes, live channels, plus speaker history and action results.
"""

from sy_common.models.base import Entity, utc_now
from sy_common.models.conference import Participant, Room
from sy_common.models.mwi import Mailbox
from sy_common.models.pjsip import (
    Contact,
    ContactStatus,
    Endpoint,
    EndpointStatus,
    OutboundRegistration,
    RegistrationStatus,
    status_from_device_state,
)
from sy_common.models.results import ActionResult
from sy_common.models.speaker import SpeakerHistoryEntry
from sy_common.models.system import Channel

__all__ = [
    "ActionResult",
    "Channel",
    "Contact",
    "ContactStatus",
    "Endpoint",
    "EndpointStatus",
    "Entity",
    "Mailbox",
    "OutboundRegistration",
    "Participant",
    "RegistrationStatus",
    "Room",
    "SpeakerHistoryEntry",
    "status_from_device_state",
    "utc_now",
]
