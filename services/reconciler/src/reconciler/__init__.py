"""
Switchyard Reconciler Service.

Keeps entity stores for ConfBridge rooms and participants, PJSIP
endpoints and contacts, voicemail indicators, and live channels
consistent with the server by reconciling list snapshots with push
events.
"""
from __future__ import annotations

from reconciler.entity_store import EntityStore
from reconciler.resources import (
    ConfBridgeSynchronizer,
    MwiSynchronizer,
    PjsipSynchronizer,
    SystemSynchronizer,
)
from reconciler.synchronizer import ResourceSynchronizer, SnapshotSpec

__all__ = [
    "ConfBridgeSynchronizer",
    "EntityStore",
    "MwiSynchronizer",
    "PjsipSynchronizer",
    "ResourceSynchronizer",
    "SnapshotSpec",
    "SystemSynchronizer",
]
