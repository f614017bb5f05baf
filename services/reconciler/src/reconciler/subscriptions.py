"""
Subscription arena: one owner for every unsubscribe callable.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog

logger = structlog.get_logger()


class SubscriptionArena:
    """Collects unsubscribe callables and releases them together."""

    def __init__(self) -> None:
        self._cleanups: list[Callable[[], None]] = []

    def add(self, cleanup: Callable[[], None]) -> None:
        self._cleanups.append(cleanup)

    def close(self) -> None:
        """Run every cleanup once; a failing cleanup does not stop the rest."""
        cleanups, self._cleanups = self._cleanups, []
        for cleanup in cleanups:
            try:
                cleanup()
            except Exception:  # noqa: BLE001
                logger.exception("unsubscribe_failed")

    def __len__(self) -> int:
        return len(self._cleanups)
