"""
Dominant-speaker detection over the reconciled participant store.

The detector listens to the participant store and recomputes on every
change.  The instantaneous candidate set (``active_speakers``) is exposed
as-is; the single dominant speaker is committed only after the top
candidate has been stable for ``debounce_ms``.  The debounce is trailing
and restartable: a new top candidate restarts the timer with itself as
the target.

Each committed speaker opens a :class:`SpeakerHistoryEntry`; the next
commit, or the participant leaving, closes it.  History is a ring buffer
of ``history_size`` entries with at most one open entry.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable
from typing import Any, Protocol

import structlog

from sy_common.config import get_settings
from sy_common.models.conference import Participant
from sy_common.models.speaker import SpeakerHistoryEntry

from reconciler.entity_store import EntityStore

logger = structlog.get_logger()

SpeakerChangeCallback = Callable[[str | None, str | None], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


def _loop_call_later(delay: float, callback: Callable[[], None]) -> TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


class ActiveSpeakerDetector:
    """Debounced dominant-speaker tracking with bounded history.

    Args:
        source: A ``ConfBridgeSynchronizer`` (its participant store is used)
            or a participant ``EntityStore``.
        threshold: Minimum audio level of a candidate.  Defaults to
            ``Settings.speaker_threshold``.
        debounce_ms: Stability window before a commit.  Defaults to
            ``Settings.speaker_debounce_ms``.
        history_size: Ring buffer capacity.  Defaults to
            ``Settings.speaker_history_size``.
        exclude_muted: Drop muted participants from the candidates.
        room_id: Only consider participants of this room.
        on_speaker_change: Called with ``(new_id, previous_id)`` on commit.
        clock: Returns epoch seconds for history timestamps.
        call_later: ``(delay_s, callback) -> handle`` used for the debounce
            timer.  Defaults to the running event loop's ``call_later``.
    """

    def __init__(
        self,
        source: Any,
        *,
        threshold: float | None = None,
        debounce_ms: int | None = None,
        history_size: int | None = None,
        exclude_muted: bool = True,
        room_id: str | None = None,
        on_speaker_change: SpeakerChangeCallback | None = None,
        clock: Callable[[], float] = time.time,
        call_later: Scheduler | None = None,
    ) -> None:
        settings = get_settings()
        self._store: EntityStore[Participant] = source if isinstance(source, EntityStore) else source.participants
        self._threshold = _clamp(settings.speaker_threshold if threshold is None else threshold)
        self._debounce_s = (settings.speaker_debounce_ms if debounce_ms is None else debounce_ms) / 1000
        self._history: deque[SpeakerHistoryEntry] = deque(
            maxlen=history_size or settings.speaker_history_size,
        )
        self.exclude_muted = exclude_muted
        self.room_id = room_id
        self._on_speaker_change = on_speaker_change
        self._clock = clock
        self._call_later = call_later or _loop_call_later

        self._committed_id: str | None = None
        self._pending_id: str | None = None
        self._timer: TimerHandle | None = None
        self._open: SpeakerHistoryEntry | None = None

        self._detach = self._store.add_listener(self._on_store_change)
        self.recompute()

    # ── views ──

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def active_speakers(self) -> list[Participant]:
        """Current candidates, loudest first.  Not debounced."""
        candidates = [p for p in self._store if self._is_candidate(p)]
        candidates.sort(key=lambda p: p.audio_level or 0.0, reverse=True)
        return candidates

    @property
    def active_speaker(self) -> Participant | None:
        """The committed dominant speaker, if still present."""
        if self._committed_id is None:
            return None
        return self._store.get(self._committed_id)

    @property
    def active_speaker_id(self) -> str | None:
        speaker = self.active_speaker
        return speaker.id if speaker is not None else None

    @property
    def is_someone_speaking(self) -> bool:
        return bool(self.active_speakers)

    @property
    def speaker_history(self) -> list[SpeakerHistoryEntry]:
        """History entries, oldest first."""
        return list(self._history)

    # ── controls ──

    def set_threshold(self, threshold: float) -> None:
        """Change the candidate threshold; history and timer state are kept."""
        self._threshold = _clamp(threshold)
        self.recompute()

    def clear_history(self) -> None:
        self._history.clear()
        self._open = None

    def close(self) -> None:
        """Cancel a pending commit and stop listening to the store."""
        self._cancel_timer()
        self._detach()

    # ── recompute ──

    def _is_candidate(self, participant: Participant) -> bool:
        if self.room_id is not None and participant.room_id != self.room_id:
            return False
        level = participant.audio_level
        if level is None or level < self._threshold:
            return False
        if self.exclude_muted and participant.is_muted:
            return False
        return not participant.is_on_hold

    def _on_store_change(self, participant_id: str, participant: Participant | None) -> None:
        if participant is None and self._open is not None and self._open.participant_id == participant_id:
            self._close_open()
            logger.debug("speaker_left_while_open", participant_id=participant_id)
        self.recompute()

    def recompute(self) -> None:
        candidates = self.active_speakers
        top = candidates[0].id if candidates else None

        self._raise_peak()

        if top == self._committed_id:
            self._cancel_timer()
            return
        if self._timer is not None and top == self._pending_id:
            return

        self._cancel_timer()
        self._pending_id = top
        if self._debounce_s <= 0:
            self._commit(top)
            return
        self._timer = self._call_later(self._debounce_s, self._fire)

    def _fire(self) -> None:
        self._timer = None
        self._commit(self._pending_id)

    def _commit(self, target: str | None) -> None:
        previous = self._committed_id
        self._pending_id = None
        self._close_open()
        self._committed_id = target

        participant = self._store.get(target) if target is not None else None
        if participant is not None:
            self._open = SpeakerHistoryEntry(
                participant_id=participant.id,
                display_name=participant.display_name,
                started_at=self._clock(),
                peak_level=_clamp(participant.audio_level or 0.0),
            )
            self._history.append(self._open)

        logger.debug("active_speaker_committed", speaker=target, previous=previous)
        if self._on_speaker_change is not None and target != previous:
            try:
                self._on_speaker_change(target, previous)
            except Exception:  # noqa: BLE001
                logger.exception("speaker_change_callback_failed", speaker=target)

    def _close_open(self) -> None:
        if self._open is not None:
            self._open.ended_at = self._clock()
            self._open = None

    def _raise_peak(self) -> None:
        if self._open is None:
            return
        participant = self._store.get(self._open.participant_id)
        if participant is None or participant.audio_level is None:
            return
        level = _clamp(participant.audio_level)
        if level > self._open.peak_level:
            self._open.peak_level = level

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending_id = None


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, float(value)))
