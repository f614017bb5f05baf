"""
Transport session contract consumed by the reconciler.

The session itself (socket, login, reconnect) lives outside this
repository; anything with ``send_request``, ``subscribe`` and
``is_connected`` can drive a synchronizer. ``SessionRef`` is the
observed reference synchronizers watch to re-bind on reconnection.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import structlog

logger = structlog.get_logger()

EventHandler = Callable[[dict[str, str]], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True, slots=True)
class TransportResponse:
    """Direct response to a request plus any bundled list-item records.

    Attributes:
        fields: Key-value fields of the terminal response.
        events: Event-shaped records returned with the response, in order.
    """

    fields: dict[str, str] = field(default_factory=dict)
    events: list[dict[str, str]] = field(default_factory=list)

    @property
    def is_error(self) -> bool:
        """``True`` when the server rejected the request."""
        return self.fields.get("Response", "").lower() == "error"

    @property
    def message(self) -> str:
        """Human-readable message attached to the response, if any."""
        return self.fields.get("Message", "")


@runtime_checkable
class TransportSession(Protocol):
    """A connected management-protocol session."""

    def send_request(
        self,
        action: str,
        args: Mapping[str, str],
    ) -> Awaitable[TransportResponse]: ...

    def subscribe(self, event_name: str, handler: EventHandler) -> Unsubscribe: ...

    def is_connected(self) -> bool: ...


SessionWatcher = Callable[["TransportSession | None", "TransportSession | None"], None]


class SessionRef:
    """Observable holder for the current transport session.

    Owners call :meth:`set` whenever the session connects, reconnects or
    drops (``None``). Watchers receive ``(new, old)``.

    Args:
        session: Initial session, if one is already connected.
    """

    def __init__(self, session: TransportSession | None = None) -> None:
        self._session = session
        self._watchers: list[SessionWatcher] = []

    @property
    def value(self) -> TransportSession | None:
        """The current session, or ``None`` while disconnected."""
        return self._session

    def set(self, session: TransportSession | None) -> None:
        """Replace the current session and notify watchers."""
        old = self._session
        if session is old:
            return
        self._session = session
        for watcher in list(self._watchers):
            try:
                watcher(session, old)
            except Exception:  # noqa: BLE001
                logger.exception("session_watcher_failed")

    def watch(self, watcher: SessionWatcher) -> Unsubscribe:
        """Register *watcher*; returns a callable that removes it."""
        self._watchers.append(watcher)

        def _unwatch() -> None:
            if watcher in self._watchers:
                self._watchers.remove(watcher)

        return _unwatch
