"""
Error types shared by the Switchyard packages.

Request-level failures are split by kind so callers can tell a
transient timeout from a definitive remote rejection.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for synchronization errors."""


class TransportUnavailableError(SyncError):
    """Raised when a request is issued without a connected session."""


class RequestTimeoutError(SyncError):
    """Raised when a request does not complete within the configured bound.

    Attributes:
        action: The action name that timed out.
        timeout_s: The bound that was exceeded.
    """

    def __init__(self, action: str, timeout_s: float) -> None:
        super().__init__(f"Request '{action}' timed out after {timeout_s:g}s")
        self.action = action
        self.timeout_s = timeout_s


class RemoteActionError(SyncError):
    """Raised by a transport when the server rejects an action.

    The synchronizer converts it into an unsuccessful ``ActionResult``
    rather than letting it escape to the caller.
    """
