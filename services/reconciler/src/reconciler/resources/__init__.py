"""
Per-resource synchronizers built on :class:`ResourceSynchronizer`.
"""

from reconciler.resources.confbridge import ConfBridgeSynchronizer
from reconciler.resources.mwi import MwiSynchronizer
from reconciler.resources.pjsip import PjsipSynchronizer
from reconciler.resources.system import SystemSynchronizer

__all__ = [
    "ConfBridgeSynchronizer",
    "MwiSynchronizer",
    "PjsipSynchronizer",
    "SystemSynchronizer",
]
