"""
Conference room and participant data models for Switchyard.

A room owns any number of participants through ``Participant.room_id``.
``Room.participant_count`` is derived from the participant collection by
the synchronizer; it is never taken from an event field once the room's
participants are known.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from sy_common.models.base import Entity, utc_now


class Room(Entity):
    """A conference bridge room.

    Attributes:
        id: Conference name.
        participant_count: Number of participants in the room.
        locked: Whether new participants are refused.
        muted: Whether the room is muted as a whole.
        recording: Whether the room is being recorded.
        marked_count: Number of marked participants.
    """

    participant_count: int = Field(default=0, ge=0, description="Participants in the room.")
    locked: bool = Field(default=False, description="Room refuses new participants.")
    muted: bool = Field(default=False, description="Room is muted as a whole.")
    recording: bool = Field(default=False, description="Room is being recorded.")
    marked_count: int = Field(default=0, ge=0, description="Marked participants.")


class Participant(Entity):
    """A single channel joined to a conference room.

    Attributes:
        id: Channel identifier (unique across rooms).
        room_id: Conference the channel is joined to.
        caller_number: Caller ID number.
        caller_name: Caller ID name.
        is_admin: Whether the participant has admin rights in the room.
        is_marked: Whether the participant is a marked user.
        is_muted: Whether the participant is muted.
        is_talking: Server-side talk detection flag.
        is_on_hold: Whether the participant is on hold.
        is_self: Whether this channel belongs to the local user.
        audio_level: Normalised audio level, ``None`` when unknown.
        joined_at: When the participant was first seen (UTC).
    """

    room_id: str = Field(default="", description="Conference the channel is joined to.")
    caller_number: str = Field(default="", description="Caller ID number.")
    caller_name: str = Field(default="", description="Caller ID name.")
    is_admin: bool = Field(default=False, description="Admin rights in the room.")
    is_marked: bool = Field(default=False, description="Marked user.")
    is_muted: bool = Field(default=False, description="Participant is muted.")
    is_talking: bool = Field(default=False, description="Server-side talk detection.")
    is_on_hold: bool = Field(default=False, description="Participant is on hold.")
    is_self: bool = Field(default=False, description="Channel belongs to the local user.")
    audio_level: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Normalised audio level.",
    )
    joined_at: datetime = Field(default_factory=utc_now, description="First seen (UTC).")

    @property
    def display_name(self) -> str:
        """Caller name, falling back to the number and then the channel."""
        return self.caller_name or self.caller_number or self.id
