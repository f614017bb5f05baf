"""
Reconciler service entry point for Switchyard.

Starts a FastAPI application that:

* Connects a :class:`RedisAmiSession` and publishes it through a shared
  :class:`SessionRef`.
* Builds one synchronizer per resource type bound to that reference.
* Exposes ``/health`` and ``/metrics`` endpoints.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from sy_common.config import get_settings
from sy_common.logging import configure_logging
from sy_common.messaging.redis_client import RedisClient
from sy_common.messaging.redis_transport import RedisAmiSession
from sy_common.messaging.transport import SessionRef

from reconciler import health
from reconciler.resources import (
    ConfBridgeSynchronizer,
    MwiSynchronizer,
    PjsipSynchronizer,
    SystemSynchronizer,
)
from reconciler.synchronizer import ResourceSynchronizer

logger = structlog.get_logger()

session_ref = SessionRef()
_session: RedisAmiSession | None = None
_synchronizers: list[ResourceSynchronizer] = []


def build_synchronizers(ref: SessionRef) -> list[ResourceSynchronizer]:
    """Create one synchronizer per resource type, all watching *ref*."""
    return [
        ConfBridgeSynchronizer(ref),
        PjsipSynchronizer(ref, include_registrations=True),
        MwiSynchronizer(ref),
        SystemSynchronizer(ref),
    ]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: build synchronizers, connect the session."""
    global _session  # noqa: PLW0603

    settings = get_settings()
    configure_logging(settings.log_level, service="reconciler", json=settings.log_json)

    # ── startup ──
    _synchronizers.extend(build_synchronizers(session_ref))
    for sync in _synchronizers:
        health.register(sync)

    _session = RedisAmiSession(RedisClient(settings.redis_url))
    await _session.start()
    health.set_redis_check(_session.ping)
    session_ref.set(_session)
    logger.info("reconciler_startup", resources=[s.resource for s in _synchronizers])

    yield

    # ── shutdown ──
    logger.info("reconciler_shutdown")
    session_ref.set(None)
    for sync in _synchronizers:
        sync.destroy()
    _synchronizers.clear()
    health.reset()
    await _session.stop()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(title="Switchyard Reconciler Service", lifespan=lifespan)
    app.include_router(health.router)

    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)
    return app


app = create_app()


def main() -> None:
    """Run the reconciler service with Uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "reconciler.main:app",
        host=settings.service_host,
        port=settings.service_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
