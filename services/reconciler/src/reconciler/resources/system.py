"""
System synchronizer: live channels.
"""

from __future__ import annotations

from collections.abc import Mapping

from sy_common.models.results import ActionResult
from sy_common.models.system import Channel

from reconciler.parsing import Delta, as_duration, pick, require, text
from reconciler.synchronizer import ResourceSynchronizer, SnapshotSpec

CHANNELS = "channels"

_CHANNEL_FIELDS = {
    "CallerIDNum": ("caller_number", text),
    "CallerIDName": ("caller_name", text),
    "Application": ("application", text),
    "BridgeId": ("bridge_id", text),
    "Duration": ("duration_s", as_duration),
}


def parse_channel(payload: Mapping[str, str]) -> Delta | None:
    channel = require(payload, "Channel")
    if channel is None:
        return None
    fields = pick(payload, _CHANNEL_FIELDS)
    state = require(payload, "ChannelStateDesc") or require(payload, "StateDesc")
    if state is not None:
        fields["state"] = state
    return Delta(channel, fields=fields)


class SystemSynchronizer(ResourceSynchronizer):
    """Keeps the live channel list in sync."""

    resource = "system"

    def _configure(self) -> None:
        self.channels = self.add_store(CHANNELS, Channel)
        self.add_snapshot(
            CHANNELS,
            SnapshotSpec(
                action="CoreShowChannels",
                store=CHANNELS,
                parse=parse_channel,
                item_event="CoreShowChannel",
            ),
        )
        self.on_event("Newchannel", parse_channel, self._upsert, stores=(CHANNELS,))
        self.on_event("Newstate", parse_channel, self._upsert, stores=(CHANNELS,))
        self.on_event("Hangup", parse_channel, self._hangup, stores=(CHANNELS,))

    def _upsert(self, delta: Delta) -> None:
        self.channels.upsert(delta.entity_id, delta.fields)

    def _hangup(self, delta: Delta) -> None:
        self.channels.remove(delta.entity_id)

    async def list_channels(self) -> list[Channel]:
        return await self.refresh_list(CHANNELS)

    async def hangup(self, channel: str, cause: int | None = None) -> ActionResult:
        args = {"Channel": channel}
        if cause is not None:
            args["Cause"] = str(cause)
        return await self.invoke(
            "Hangup",
            args,
            target_id=channel,
            optimistic=lambda: self.channels.remove(channel),
        )

    def channels_in_state(self, state: str) -> list[Channel]:
        wanted = state.lower()
        return self.channels.filter(lambda c: c.state.lower() == wanted)
