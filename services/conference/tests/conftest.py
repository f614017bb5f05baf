"""Shared fixtures for conference service tests."""

from __future__ import annotations

import os
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

# Reuse the fake transport session from the reconciler test suite
# (needed with --import-mode=importlib).
sys.path.append(str(Path(__file__).resolve().parents[2] / "reconciler" / "tests"))

os.environ.setdefault("SY_AUTO_REFRESH", "false")
os.environ.setdefault("SY_LOG_JSON", "false")

from ami_fakes import FakeSession  # noqa: E402

from reconciler.resources.confbridge import ConfBridgeSynchronizer  # noqa: E402

ROOM = "1000"
ALICE = "PJSIP/1001-00000001"
BOB = "PJSIP/1002-00000002"
CHARLIE = "PJSIP/1003-00000003"
ME = "PJSIP/1000-00000004"


class _Timer:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeTimers:
    """Manual clock and ``call_later`` replacement.

    ``advance(ms)`` moves the clock forward and fires every timer that
    comes due on the way, in due order.
    """

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self._timers: list[_Timer] = []

    def clock(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[[], None]) -> _Timer:
        timer = _Timer(self.now + delay, callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)

    def advance(self, ms: float) -> None:
        target = self.now + ms / 1000
        while True:
            due = [t for t in self._timers if not t.cancelled and t.due <= target + 1e-6]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self._timers.remove(timer)
            self.now = timer.due
            timer.callback()
        self._timers = [t for t in self._timers if not t.cancelled]
        self.now = target


@pytest.fixture()
def timers() -> FakeTimers:
    return FakeTimers()


@pytest.fixture()
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture()
def confbridge(session: FakeSession) -> ConfBridgeSynchronizer:
    """ConfBridge synchronizer with Alice, Bob and Charlie in room 1000."""
    sync = ConfBridgeSynchronizer(session, auto_refresh=False, self_caller_number="1000")
    for channel, name in ((ALICE, "Alice"), (BOB, "Bob"), (CHARLIE, "Charlie")):
        sync.apply_event(
            "ConfbridgeJoin",
            {
                "Conference": ROOM,
                "Channel": channel,
                "CallerIDNum": channel.split("/")[1].split("-")[0],
                "CallerIDName": name,
                "Muted": "No",
            },
        )
    yield sync
    sync.destroy()
