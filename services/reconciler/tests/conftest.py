"""Shared fixtures for reconciler service tests."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Make helpers in this directory importable from test files
# (needed with --import-mode=importlib).
sys.path.append(str(Path(__file__).resolve().parent))

# Set env vars before any sy_common import so Settings picks them up.
os.environ.setdefault("SY_REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("SY_REQUEST_TIMEOUT_S", "2")
os.environ.setdefault("SY_AUTO_REFRESH", "false")
os.environ.setdefault("SY_LOG_JSON", "false")

from ami_fakes import FakeSession  # noqa: E402

from sy_common.messaging.transport import SessionRef  # noqa: E402

from reconciler.resources.confbridge import ConfBridgeSynchronizer  # noqa: E402
from reconciler.resources.mwi import MwiSynchronizer  # noqa: E402
from reconciler.resources.pjsip import PjsipSynchronizer  # noqa: E402
from reconciler.resources.system import SystemSynchronizer  # noqa: E402


@pytest.fixture()
def session() -> FakeSession:
    """A connected fake transport session."""
    return FakeSession()


@pytest.fixture()
def session_ref(session: FakeSession) -> SessionRef:
    return SessionRef(session)


@pytest.fixture()
def confbridge(session_ref: SessionRef) -> ConfBridgeSynchronizer:
    """ConfBridge synchronizer bound to the fake session, no auto-refresh."""
    sync = ConfBridgeSynchronizer(session_ref, auto_refresh=False, self_caller_number="1000")
    yield sync
    sync.destroy()


@pytest.fixture()
def pjsip(session_ref: SessionRef) -> PjsipSynchronizer:
    sync = PjsipSynchronizer(session_ref, auto_refresh=False, include_registrations=True)
    yield sync
    sync.destroy()


@pytest.fixture()
def mwi(session_ref: SessionRef) -> MwiSynchronizer:
    sync = MwiSynchronizer(session_ref, auto_refresh=False, default_context="default")
    yield sync
    sync.destroy()


@pytest.fixture()
def system(session_ref: SessionRef) -> SystemSynchronizer:
    sync = SystemSynchronizer(session_ref, auto_refresh=False)
    yield sync
    sync.destroy()


@pytest.fixture()
def room_id() -> str:
    """A deterministic conference name for tests."""
    return "1000"


def join_payload(channel: str, conference: str = "1000", **extra: str) -> dict[str, str]:
    return {
        "Conference": conference,
        "Channel": channel,
        "CallerIDNum": channel.split("/")[-1].split("-")[0],
        "CallerIDName": "",
        "Admin": "No",
        "Marked": "No",
        "Muted": "No",
        **extra,
    }


@pytest.fixture()
def join():
    """Factory for ``ConfbridgeJoin``-shaped payloads."""
    return join_payload
