"""
Result type returned by every mutating action.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ActionResult(BaseModel):
    """Outcome of an action dispatched to the server.

    Attributes:
        success: Whether the server accepted the action.
        id: Identity of the entity the action targeted.
        error: Server or transport message when ``success`` is ``False``.
    """

    success: bool = Field(..., description="Server accepted the action.")
    id: str = Field(..., description="Targeted entity id.")
    error: str | None = Field(default=None, description="Failure message.")
