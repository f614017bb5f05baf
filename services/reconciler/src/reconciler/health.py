"""
Health check endpoint for the Switchyard reconciler service.

Exposes a ``/health`` endpoint reporting session connectivity, Redis
reachability, and the staleness of each resource's entity stores.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter

from reconciler.synchronizer import ResourceSynchronizer

router = APIRouter()

# Populated by main.py once the synchronizers are built.
_synchronizers: dict[str, ResourceSynchronizer] = {}
_redis_check: Callable[[], Awaitable[bool]] | None = None


def register(synchronizer: ResourceSynchronizer) -> None:
    """Report *synchronizer* on ``/health``."""
    _synchronizers[synchronizer.resource] = synchronizer


def set_redis_check(check: Callable[[], Awaitable[bool]] | None) -> None:
    """Report the result of *check* as ``redis`` on ``/health``."""
    global _redis_check  # noqa: PLW0603
    _redis_check = check


def reset() -> None:
    _synchronizers.clear()
    set_redis_check(None)


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Return service health including per-resource liveness.

    Returns:
        Dict with ``status``, ``service``, ``redis`` and ``resources`` keys.
        Status is ``degraded`` while any resource is serving last-known
        data or Redis does not answer.  ``redis`` is ``None`` when no
        session is attached.
    """
    resources = {
        name: {
            "live": sync.is_live,
            "loading": sync.is_loading,
            "error": sync.error,
        }
        for name, sync in _synchronizers.items()
    }
    redis_ok = await _redis_check() if _redis_check is not None else None
    live = bool(resources) and all(r["live"] for r in resources.values())
    return {
        "status": "ok" if live and redis_ok is not False else "degraded",
        "service": "reconciler",
        "redis": redis_ok,
        "resources": resources,
    }
