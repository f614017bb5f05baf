"""
Tests for sy-common Pydantic data models.

Covers identity validation, immutability, and the derived fields on the
PJSIP and voicemail models.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from sy_common.models import (
    ActionResult,
    Contact,
    ContactStatus,
    Endpoint,
    EndpointStatus,
    Mailbox,
    Participant,
    Room,
    SpeakerHistoryEntry,
    status_from_device_state,
)


class TestEntity:

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Room(id="")

    def test_frozen(self) -> None:
        room = Room(id="1000")
        with pytest.raises(ValidationError):
            room.locked = True  # type: ignore[misc]

    def test_copy_update_returns_new_instance(self) -> None:
        room = Room(id="1000")
        locked = room.model_copy(update={"locked": True})
        assert locked.locked is True
        assert room.locked is False


class TestConferenceModels:

    def test_room_defaults(self) -> None:
        room = Room(id="1000")
        assert room.participant_count == 0
        assert not (room.locked or room.muted or room.recording)

    def test_negative_count_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Room(id="1000", participant_count=-1)

    def test_audio_level_bounds(self) -> None:
        with pytest.raises(ValidationError):
            Participant(id="PJSIP/1001-1", audio_level=1.2)

    @pytest.mark.parametrize(
        ("fields", "expected"),
        [
            ({"caller_name": "Alice", "caller_number": "1001"}, "Alice"),
            ({"caller_number": "1001"}, "1001"),
            ({}, "PJSIP/1001-1"),
        ],
    )
    def test_display_name_fallback(self, fields: dict[str, str], expected: str) -> None:
        assert Participant(id="PJSIP/1001-1", **fields).display_name == expected


class TestPjsipModels:

    @pytest.mark.parametrize(
        ("state", "status"),
        [
            ("NOT_INUSE", EndpointStatus.AVAILABLE),
            ("inuse", EndpointStatus.BUSY),
            ("ONHOLD", EndpointStatus.BUSY),
            ("RINGINUSE", EndpointStatus.RINGING),
            ("UNAVAILABLE", EndpointStatus.UNAVAILABLE),
            ("something-new", EndpointStatus.UNAVAILABLE),
        ],
    )
    def test_status_from_device_state(self, state: str, status: EndpointStatus) -> None:
        assert status_from_device_state(state) is status

    def test_endpoint_status_is_derived(self) -> None:
        endpoint = Endpoint(id="1001", device_state="RINGING")
        assert endpoint.status is EndpointStatus.RINGING
        assert endpoint.model_dump()["status"] == EndpointStatus.RINGING

    def test_contact_defaults(self) -> None:
        contact = Contact(id="sip:1001@10.0.0.5:5060")
        assert contact.status is ContactStatus.UNKNOWN
        assert contact.round_trip_time_ms is None


class TestMailbox:

    def test_indicator_follows_new_messages(self) -> None:
        assert Mailbox(id="1001@default", new_count=1).indicator_on is True
        assert Mailbox(id="1001@default", old_count=9).indicator_on is False

    def test_negative_counts_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Mailbox(id="1001@default", new_count=-1)


class TestSpeakerHistoryEntry:

    def test_open_until_ended(self) -> None:
        entry = SpeakerHistoryEntry(participant_id="PJSIP/1001-1", started_at=10.0)
        assert entry.is_open is True
        entry.ended_at = 12.5
        assert entry.is_open is False


class TestActionResult:

    def test_failure_carries_error(self) -> None:
        result = ActionResult(success=False, id="1000", error="No such conference")
        assert result.model_dump() == {"success": False, "id": "1000", "error": "No such conference"}
