"""
Message-waiting indicator synchronizer.

Mailboxes are listed one at a time: ``MailboxCount`` answers in the
response fields, so each refresh is scoped by the mailbox id.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from sy_common.config import get_settings
from sy_common.errors import SyncError
from sy_common.models.base import utc_now
from sy_common.models.mwi import Mailbox
from sy_common.models.results import ActionResult

from reconciler.parsing import Delta, Parser, as_int, pick, require
from reconciler.synchronizer import ResourceSynchronizer, SnapshotSpec

logger = structlog.get_logger()

MAILBOXES = "mailboxes"


def format_mailbox(mailbox: str, context: str) -> str:
    """Return *mailbox* in ``box@context`` form."""
    mailbox = mailbox.strip()
    return mailbox if "@" in mailbox else f"{mailbox}@{context}"


def _count(value: str) -> int:
    return max(0, as_int(value))


def parse_mailbox_count(payload: Mapping[str, str]) -> Delta | None:
    mailbox = require(payload, "Mailbox")
    if mailbox is None:
        return None
    fields = pick(payload, {"NewMessages": ("new_count", _count), "OldMessages": ("old_count", _count)})
    return Delta(mailbox, scope=mailbox, fields=fields)


def parse_message_waiting(payload: Mapping[str, str]) -> Delta | None:
    mailbox = require(payload, "Mailbox")
    if mailbox is None:
        return None
    fields = pick(payload, {"New": ("new_count", _count), "Old": ("old_count", _count)})
    return Delta(mailbox, scope=mailbox, fields=fields)


class MwiSynchronizer(ResourceSynchronizer):
    """Keeps voicemail message counts in sync.

    Args:
        session: Session reference (see :class:`ResourceSynchronizer`).
        default_context: Context appended to bare mailbox numbers.
            Defaults to ``Settings.mwi_default_context``.
        mailboxes: Mailboxes to track from the start.
        **kwargs: Forwarded to :class:`ResourceSynchronizer`.
    """

    resource = "mwi"

    def __init__(
        self,
        session: Any = None,
        *,
        default_context: str | None = None,
        mailboxes: list[str] | None = None,
        **kwargs: Any,
    ) -> None:
        self.default_context = default_context or get_settings().mwi_default_context
        self._tracked: dict[str, None] = {self.format(m): None for m in mailboxes or []}
        super().__init__(session, **kwargs)

    def _configure(self) -> None:
        self.mailboxes = self.add_store(MAILBOXES, Mailbox)
        self.add_snapshot(
            MAILBOXES,
            SnapshotSpec(
                action="MailboxCount",
                store=MAILBOXES,
                parse=self._formatted(parse_mailbox_count),
                scope_arg="Mailbox",
                scope_field="id",
            ),
        )
        self.on_event(
            "MessageWaiting",
            self._formatted(parse_message_waiting),
            self._message_waiting,
            stores=(MAILBOXES,),
        )

    def format(self, mailbox: str) -> str:
        return format_mailbox(mailbox, self.default_context)

    def _formatted(self, parse: Parser) -> Parser:
        def _parse(payload: Mapping[str, str]) -> Delta | None:
            delta = parse(payload)
            if delta is None:
                return None
            mailbox_id = self.format(delta.entity_id)
            return Delta(mailbox_id, scope=mailbox_id, fields=delta.fields)

        return _parse

    def _message_waiting(self, delta: Delta) -> None:
        mailbox_id = delta.entity_id
        current = self.mailboxes.get(mailbox_id)
        if current is not None and all(getattr(current, k) == v for k, v in delta.fields.items()):
            return
        self.mailboxes.upsert(mailbox_id, {**delta.fields, "updated_at": utc_now()})

    def _after_snapshot(self, kind: str, scope: str | None) -> None:
        if scope is not None and scope in self.mailboxes:
            self.mailboxes.upsert(scope, {"updated_at": utc_now()})

    # ── snapshots ──

    async def get_mailbox_status(self, mailbox: str) -> Mailbox | None:
        mailbox_id = self.format(mailbox)
        await self.refresh_list(MAILBOXES, mailbox_id)
        return self.mailboxes.get(mailbox_id)

    async def track(self, mailbox: str) -> Mailbox | None:
        """Start tracking *mailbox* and fetch its counts."""
        self._tracked[self.format(mailbox)] = None
        return await self.get_mailbox_status(mailbox)

    def untrack(self, mailbox: str) -> None:
        mailbox_id = self.format(mailbox)
        self._tracked.pop(mailbox_id, None)
        self.mailboxes.remove(mailbox_id)

    @property
    def tracked(self) -> list[str]:
        return list(self._tracked)

    async def refresh(self) -> None:
        """Re-read every tracked or known mailbox; one failure does not stop the rest."""
        mailbox_ids = list(dict.fromkeys([*self._tracked, *self.mailboxes.ids()]))
        for mailbox_id in mailbox_ids:
            try:
                await self.refresh_list(MAILBOXES, mailbox_id)
            except SyncError as exc:
                logger.warning("mailbox_refresh_failed", mailbox=mailbox_id, error=str(exc))

    # ── actions ──

    async def update(self, mailbox: str, new_messages: int, old_messages: int = 0) -> ActionResult:
        mailbox_id = self.format(mailbox)

        def _optimistic() -> None:
            self.mailboxes.upsert(
                mailbox_id,
                {"new_count": new_messages, "old_count": old_messages, "updated_at": utc_now()},
            )

        return await self.invoke(
            "MWIUpdate",
            {
                "Mailbox": mailbox_id,
                "NewMessages": str(new_messages),
                "OldMessages": str(old_messages),
            },
            target_id=mailbox_id,
            optimistic=_optimistic,
        )

    async def delete(self, mailbox: str) -> ActionResult:
        mailbox_id = self.format(mailbox)
        return await self.invoke(
            "MWIDelete",
            {"Mailbox": mailbox_id},
            target_id=mailbox_id,
            optimistic=lambda: self.mailboxes.remove(mailbox_id),
        )

    # ── views ──

    def get(self, mailbox: str) -> Mailbox | None:
        return self.mailboxes.get(self.format(mailbox))

    def has_messages(self, mailbox: str) -> bool:
        status = self.get(mailbox)
        return status is not None and (status.new_count > 0 or status.old_count > 0)

    @property
    def with_messages(self) -> list[Mailbox]:
        return self.mailboxes.filter(lambda m: m.new_count > 0)

    @property
    def total_new_messages(self) -> int:
        return sum(m.new_count for m in self.mailboxes)

    @property
    def indicator_on_count(self) -> int:
        return sum(1 for m in self.mailboxes if m.indicator_on)
