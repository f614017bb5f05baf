"""
Speaker history model.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class SpeakerHistoryEntry(BaseModel):
    """One dominant-speaker period.

    ``ended_at`` stays ``None`` while the period is open; ``peak_level``
    only ever rises while it is open.

    Attributes:
        participant_id: Participant that held the floor.
        display_name: Name shown for the participant when the period opened.
        started_at: Epoch seconds the period was committed.
        ended_at: Epoch seconds the period closed, ``None`` while open.
        peak_level: Highest audio level observed during the period.
    """

    participant_id: str = Field(..., description="Participant that held the floor.")
    display_name: str = Field(default="", description="Display name at open time.")
    started_at: float = Field(..., description="Epoch seconds the period opened.")
    ended_at: float | None = Field(default=None, description="Epoch seconds it closed.")
    peak_level: float = Field(default=0.0, ge=0.0, le=1.0, description="Peak audio level.")

    @property
    def is_open(self) -> bool:
        """``True`` while the period has not been closed."""
        return self.ended_at is None
