"""
Base model shared by every synchronized entity.

Entities are immutable snapshots: the entity store produces a new
validated instance on each merge, so readers can never write through
a reference they were handed.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


class Entity(BaseModel):
    """A record identified by a stable, non-empty string key.

    Attributes:
        id: Identity key, unique within its collection.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str = Field(..., min_length=1, description="Identity key.")
