"""
ConfBridge synchronizer: conference rooms and their participants.

Snapshots
---------
* ``rooms``: ``ConfbridgeListRooms``, unscoped.
* ``participants``: ``ConfbridgeList``, scoped by ``Conference``.

``Room.participant_count`` is recomputed from the participant store for
every room whose participant scope has been synchronized (or that never
received a server-side count).  A room known only from a rooms snapshot
keeps the server's ``Parties`` figure, adjusted by one per join and leave
until its participants are listed.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import structlog

from sy_common.models.conference import Participant, Room
from sy_common.models.results import ActionResult

from reconciler.parsing import Delta, as_bool, as_int, pick, require, text
from reconciler.synchronizer import ResourceSynchronizer, SnapshotSpec

logger = structlog.get_logger()

ROOMS = "rooms"
PARTICIPANTS = "participants"

_ROOM_FIELDS = {
    "Parties": ("participant_count", as_int),
    "Locked": ("locked", as_bool),
    "Muted": ("muted", as_bool),
    "Marked": ("marked_count", as_int),
}

_PARTICIPANT_FIELDS = {
    "Conference": ("room_id", text),
    "CallerIDNum": ("caller_number", text),
    "CallerIDName": ("caller_name", text),
    "Admin": ("is_admin", as_bool),
    "Marked": ("is_marked", as_bool),
    "Muted": ("is_muted", as_bool),
}


def parse_room(payload: Mapping[str, str]) -> Delta | None:
    conference = require(payload, "Conference")
    if conference is None:
        return None
    return Delta(conference, scope=conference, fields=pick(payload, _ROOM_FIELDS))


def parse_room_flag(name: str, value: bool) -> Callable[[Mapping[str, str]], Delta | None]:
    """Parser for events that toggle a single room flag."""

    def _parse(payload: Mapping[str, str]) -> Delta | None:
        conference = require(payload, "Conference")
        if conference is None:
            return None
        return Delta(conference, scope=conference, fields={name: value})

    return _parse


def parse_talking(payload: Mapping[str, str]) -> Delta | None:
    channel = require(payload, "Channel")
    conference = require(payload, "Conference")
    if channel is None or conference is None:
        return None
    status = payload.get("TalkingStatus", "").strip().lower()
    return Delta(channel, scope=conference, fields={"is_talking": status == "on"})


def parse_mute_flag(value: bool) -> Callable[[Mapping[str, str]], Delta | None]:
    def _parse(payload: Mapping[str, str]) -> Delta | None:
        channel = require(payload, "Channel")
        conference = require(payload, "Conference")
        if channel is None or conference is None:
            return None
        return Delta(channel, scope=conference, fields={"is_muted": value})

    return _parse


def parse_hold_flag(value: bool) -> Callable[[Mapping[str, str]], Delta | None]:
    def _parse(payload: Mapping[str, str]) -> Delta | None:
        channel = require(payload, "Channel")
        if channel is None:
            return None
        return Delta(channel, fields={"is_on_hold": value})

    return _parse


class ConfBridgeSynchronizer(ResourceSynchronizer):
    """Keeps ``rooms`` and ``participants`` in sync with ConfBridge.

    Args:
        session: Session reference (see :class:`ResourceSynchronizer`).
        room_filter: Predicate applied to ``room_list``.
        self_caller_number: Caller number identifying the local user.
        self_channel: Channel identifying the local user.
        **kwargs: Forwarded to :class:`ResourceSynchronizer`.
    """

    resource = "confbridge"

    def __init__(
        self,
        session: Any = None,
        *,
        room_filter: Callable[[Room], bool] | None = None,
        self_caller_number: str | None = None,
        self_channel: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.room_filter = room_filter
        self.self_caller_number = self_caller_number
        self.self_channel = self_channel
        self._synced_rooms: set[str] = set()
        self._server_counted: set[str] = set()
        super().__init__(session, **kwargs)

    # ── wiring ──

    def _configure(self) -> None:
        self.rooms = self.add_store(ROOMS, Room)
        self.participants = self.add_store(PARTICIPANTS, Participant)

        self.add_snapshot(
            ROOMS,
            SnapshotSpec(
                action="ConfbridgeListRooms",
                store=ROOMS,
                parse=parse_room,
                item_event="ConfbridgeListRooms",
            ),
        )
        self.add_snapshot(
            PARTICIPANTS,
            SnapshotSpec(
                action="ConfbridgeList",
                store=PARTICIPANTS,
                parse=self._parse_participant,
                item_event="ConfbridgeList",
                scope_arg="Conference",
                scope_field="room_id",
            ),
        )

        both = (ROOMS, PARTICIPANTS)
        self.on_event("ConfbridgeStart", parse_room, self._upsert_room, stores=(ROOMS,))
        self.on_event("ConfbridgeEnd", parse_room, self._end_room, stores=both)
        self.on_event("ConfbridgeJoin", self._parse_participant, self._upsert_participant, stores=both)
        self.on_event("ConfbridgeLeave", self._parse_participant, self._leave, stores=both)
        self.on_event("ConfbridgeTalking", parse_talking, self._update_present, stores=(PARTICIPANTS,))
        self.on_event("ConfbridgeMute", parse_mute_flag(True), self._update_present, stores=(PARTICIPANTS,))
        self.on_event("ConfbridgeUnmute", parse_mute_flag(False), self._update_present, stores=(PARTICIPANTS,))
        self.on_event("ConfbridgeLock", parse_room_flag("locked", True), self._upsert_room, stores=(ROOMS,))
        self.on_event("ConfbridgeUnlock", parse_room_flag("locked", False), self._upsert_room, stores=(ROOMS,))
        self.on_event("ConfbridgeRecord", parse_room_flag("recording", True), self._upsert_room, stores=(ROOMS,))
        self.on_event(
            "ConfbridgeStopRecord",
            parse_room_flag("recording", False),
            self._upsert_room,
            stores=(ROOMS,),
        )
        self.on_event("Hold", parse_hold_flag(True), self._update_present, stores=(PARTICIPANTS,))
        self.on_event("Unhold", parse_hold_flag(False), self._update_present, stores=(PARTICIPANTS,))

    def _parse_participant(self, payload: Mapping[str, str]) -> Delta | None:
        channel = require(payload, "Channel")
        conference = require(payload, "Conference")
        if channel is None or conference is None:
            return None
        fields = pick(payload, _PARTICIPANT_FIELDS)
        fields["is_self"] = self._is_self(channel, fields.get("caller_number", ""))
        return Delta(channel, scope=conference, fields=fields)

    def _is_self(self, channel: str, caller_number: str) -> bool:
        if self.self_channel is not None and channel == self.self_channel:
            return True
        return bool(self.self_caller_number) and caller_number == self.self_caller_number

    # ── event handlers ──

    def _upsert_room(self, delta: Delta) -> None:
        self.rooms.upsert(delta.entity_id, delta.fields)

    def _end_room(self, delta: Delta) -> None:
        for participant in self.participants.filter(lambda p: p.room_id == delta.entity_id):
            self.participants.remove(participant.id)
        self.rooms.remove(delta.entity_id)
        self._synced_rooms.discard(delta.entity_id)
        self._server_counted.discard(delta.entity_id)

    def _upsert_participant(self, delta: Delta) -> None:
        previous = self.participants.get(delta.entity_id)
        self.participants.upsert(delta.entity_id, delta.fields)
        room_id = delta.fields.get("room_id") or delta.scope
        if room_id is None:
            return
        if previous is None:
            self._participant_joined(room_id)
        elif previous.room_id != room_id:
            self._participant_left(previous.room_id)
            self._participant_joined(room_id)

    def _update_present(self, delta: Delta) -> None:
        if delta.entity_id not in self.participants:
            return
        self.participants.upsert(delta.entity_id, delta.fields)

    def _leave(self, delta: Delta) -> None:
        removed = self.participants.remove(delta.entity_id)
        if removed is None:
            return
        self._participant_left(removed.room_id)

    # ── derived counts ──

    def _participant_joined(self, room_id: str) -> None:
        room = self.rooms.get(room_id)
        if room is None:
            self.rooms.upsert(room_id)
        if room_id in self._server_counted:
            count = self.rooms.get(room_id).participant_count + 1
            self.rooms.upsert(room_id, {"participant_count": count})
        else:
            self._recount(room_id)

    def _participant_left(self, room_id: str) -> None:
        room = self.rooms.get(room_id)
        if room is None:
            return
        if room_id in self._server_counted:
            self.rooms.upsert(room_id, {"participant_count": max(0, room.participant_count - 1)})
        else:
            self._recount(room_id)

    def _recount(self, room_id: str) -> None:
        if room_id not in self.rooms:
            return
        members = self.participants.filter(lambda p: p.room_id == room_id)
        self.rooms.upsert(
            room_id,
            {
                "participant_count": len(members),
                "marked_count": sum(1 for p in members if p.is_marked),
            },
        )

    def _after_snapshot(self, kind: str, scope: str | None) -> None:
        if kind == ROOMS:
            known = set(self.rooms.ids())
            for orphan in self.participants.filter(lambda p: p.room_id not in known):
                self.participants.remove(orphan.id)
            self._synced_rooms &= known
            self._server_counted = known - self._synced_rooms
            for room_id in self._synced_rooms:
                self._recount(room_id)
            return

        synced = {scope} if scope is not None else {p.room_id for p in self.participants}
        for room_id in synced:
            if room_id not in self.rooms:
                self.rooms.upsert(room_id)
            self._synced_rooms.add(room_id)
            self._server_counted.discard(room_id)
            self._recount(room_id)

    # ── snapshots ──

    async def list_rooms(self) -> list[Room]:
        return await self.refresh_list(ROOMS)

    async def list_participants(self, room_id: str) -> list[Participant]:
        return await self.refresh_list(PARTICIPANTS, room_id)

    async def refresh(self) -> None:
        """List rooms, then the participants of every room."""
        await self.refresh_list(ROOMS)
        for room in self.rooms.all():
            await self.refresh_list(PARTICIPANTS, room.id)

    # ── actions ──

    async def lock(self, room_id: str) -> ActionResult:
        return await self._room_action("ConfbridgeLock", room_id, {"locked": True})

    async def unlock(self, room_id: str) -> ActionResult:
        return await self._room_action("ConfbridgeUnlock", room_id, {"locked": False})

    async def start_recording(self, room_id: str, file: str | None = None) -> ActionResult:
        extra = {"RecordFile": file} if file else {}
        return await self._room_action("ConfbridgeStartRecord", room_id, {"recording": True}, extra)

    async def stop_recording(self, room_id: str) -> ActionResult:
        return await self._room_action("ConfbridgeStopRecord", room_id, {"recording": False})

    async def mute(self, room_id: str, channel: str) -> ActionResult:
        return await self._participant_action("ConfbridgeMute", room_id, channel, {"is_muted": True})

    async def unmute(self, room_id: str, channel: str) -> ActionResult:
        return await self._participant_action("ConfbridgeUnmute", room_id, channel, {"is_muted": False})

    async def kick(self, room_id: str, channel: str) -> ActionResult:
        def _optimistic() -> None:
            self._leave(Delta(channel, scope=room_id))

        return await self.invoke(
            "ConfbridgeKick",
            {"Conference": room_id, "Channel": channel},
            target_id=channel,
            optimistic=_optimistic,
        )

    async def set_video_source(self, room_id: str, channel: str) -> ActionResult:
        return await self.invoke(
            "ConfbridgeSetSingleVideoSrc",
            {"Conference": room_id, "Channel": channel},
            target_id=room_id,
        )

    async def _room_action(
        self,
        action: str,
        room_id: str,
        fields: dict[str, Any],
        extra: dict[str, str] | None = None,
    ) -> ActionResult:
        def _optimistic() -> None:
            if room_id in self.rooms:
                self.rooms.upsert(room_id, fields)

        return await self.invoke(
            action,
            {"Conference": room_id, **(extra or {})},
            target_id=room_id,
            optimistic=_optimistic,
        )

    async def _participant_action(
        self,
        action: str,
        room_id: str,
        channel: str,
        fields: dict[str, Any],
    ) -> ActionResult:
        def _optimistic() -> None:
            if channel in self.participants:
                self.participants.upsert(channel, fields)

        return await self.invoke(
            action,
            {"Conference": room_id, "Channel": channel},
            target_id=channel,
            optimistic=_optimistic,
        )

    # ── media feed ──

    def set_audio_level(self, channel: str, level: float | None) -> None:
        """Record a locally measured audio level for *channel*.

        Levels are clamped to ``[0, 1]``; unknown channels are ignored.
        """
        if channel not in self.participants:
            return
        if level is not None:
            level = min(1.0, max(0.0, float(level)))
        self.participants.upsert(channel, {"audio_level": level})

    # ── views ──

    @property
    def room_list(self) -> list[Room]:
        rooms = self.rooms.all()
        return [r for r in rooms if self.room_filter(r)] if self.room_filter else rooms

    @property
    def participant_list(self) -> list[Participant]:
        return self.participants.all()

    def participants_in(self, room_id: str) -> list[Participant]:
        return self.participants.filter(lambda p: p.room_id == room_id)

    @property
    def total_participants(self) -> int:
        return sum(room.participant_count for room in self.room_list)
