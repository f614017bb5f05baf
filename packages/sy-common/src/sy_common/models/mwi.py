"""
Voicemail message-waiting indicator model.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, computed_field

from sy_common.models.base import Entity, utc_now


class Mailbox(Entity):
    """Message counts for a voicemail box.

    Attributes:
        id: Mailbox in ``box@context`` form.
        new_count: Unheard messages.
        old_count: Heard messages.
        updated_at: Last time the counts changed (UTC).
    """

    new_count: int = Field(default=0, ge=0, description="Unheard messages.")
    old_count: int = Field(default=0, ge=0, description="Heard messages.")
    updated_at: datetime = Field(default_factory=utc_now, description="Last change (UTC).")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def indicator_on(self) -> bool:
        """The lamp is lit whenever there are unheard messages."""
        return self.new_count > 0
