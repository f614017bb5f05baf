"""
Permission-gated controls for a single conference participant.

Every action checks its predicate at the call site; a disallowed action
returns ``None`` without dispatching anything.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog

from sy_common.models.conference import Participant
from sy_common.models.results import ActionResult

from reconciler.resources.confbridge import ConfBridgeSynchronizer

from conference.gallery_layout import GalleryLayout

logger = structlog.get_logger()

VolumeCallback = Callable[[str, float], None]


class ParticipantControls:
    """Mute, kick, pin and volume controls for *participant_id*.

    Args:
        participant_id: Channel of the controlled participant.
        confbridge: Synchronizer holding the participant and dispatching
            mute and kick actions.
        is_moderator: Whether the local user moderates the room.
        layout: Gallery whose pin the control toggles.
        initial_volume: Local playback volume in ``[0, 1]``.
        on_volume_change: Called with ``(participant_id, volume)`` when the
            volume actually changes.
    """

    def __init__(
        self,
        participant_id: str,
        confbridge: ConfBridgeSynchronizer,
        *,
        is_moderator: bool = False,
        layout: GalleryLayout | None = None,
        initial_volume: float = 1.0,
        on_volume_change: VolumeCallback | None = None,
    ) -> None:
        self.participant_id = participant_id
        self.confbridge = confbridge
        self.is_moderator = is_moderator
        self.layout = layout
        self.volume = _clamp(initial_volume)
        self._on_volume_change = on_volume_change

    @property
    def participant(self) -> Participant | None:
        return self.confbridge.participants.get(self.participant_id)

    # ── predicates ──

    @property
    def can_mute(self) -> bool:
        """Only connected participants can be muted."""
        return self.participant is not None

    @property
    def can_kick(self) -> bool:
        """Moderators may kick anyone but themselves."""
        participant = self.participant
        return self.is_moderator and participant is not None and not participant.is_self

    @property
    def can_pin(self) -> bool:
        return self.layout is not None and self.participant is not None

    @property
    def is_pinned(self) -> bool:
        return self.layout is not None and self.layout.is_pinned(self.participant_id)

    # ── actions ──

    async def toggle_mute(self) -> ActionResult | None:
        participant = self.participant
        if participant is None or not self.can_mute:
            return None
        if participant.is_muted:
            return await self.confbridge.unmute(participant.room_id, participant.id)
        return await self.confbridge.mute(participant.room_id, participant.id)

    async def kick(self) -> ActionResult | None:
        participant = self.participant
        if participant is None or not self.can_kick:
            logger.debug("kick_not_allowed", participant_id=self.participant_id)
            return None
        return await self.confbridge.kick(participant.room_id, participant.id)

    def toggle_pin(self) -> bool | None:
        """Pin or unpin the participant; returns the new pinned state."""
        if not self.can_pin:
            return None
        if self.layout.is_pinned(self.participant_id):
            self.layout.unpin()
            return False
        self.layout.pin(self.participant_id)
        return True

    def set_volume(self, level: float) -> None:
        level = _clamp(level)
        if level == self.volume:
            return
        self.volume = level
        if self._on_volume_change is not None:
            self._on_volume_change(self.participant_id, level)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, float(value)))
