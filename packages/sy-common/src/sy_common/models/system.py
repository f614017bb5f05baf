"""
Live channel model for the System resource.
"""

from __future__ import annotations

from pydantic import Field

from sy_common.models.base import Entity


class Channel(Entity):
    """An active channel on the server.

    Attributes:
        id: Channel name.
        state: Channel state description (``Up``, ``Ringing``, ...).
        caller_number: Caller ID number.
        caller_name: Caller ID name.
        application: Dialplan application currently running.
        bridge_id: Bridge the channel is in, empty when unbridged.
        duration_s: Seconds the channel has been up.
    """

    state: str = Field(default="Unknown", description="Channel state description.")
    caller_number: str = Field(default="", description="Caller ID number.")
    caller_name: str = Field(default="", description="Caller ID name.")
    application: str = Field(default="", description="Running application.")
    bridge_id: str = Field(default="", description="Bridge id, empty when unbridged.")
    duration_s: int = Field(default=0, ge=0, description="Seconds up.")
