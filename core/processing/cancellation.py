"""
Cooperative cancellation for analysis workflows.

A CancellationToken is handed to every long-running call. Cancelling it does
not interrupt the underlying network request; the call's owner detaches and
the eventual result is discarded. An OperationSlot holds at most one token
and is the only thing allowed to clear it.
"""

import logging
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class OperationCancelledError(Exception):
    """Raised when work continues past a cancelled token."""
    pass


class CancellationToken:
    """Thread-safe cancel flag (analysis SDK calls run on executor threads)."""

    def __init__(self, label: str = ""):
        self.label = label
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(f"Operation '{self.label}' was cancelled")

    def __repr__(self) -> str:
        state = "cancelled" if self.is_cancelled else "live"
        return f"CancellationToken({self.label!r}, {state})"


class OperationSlot:
    """
    Bookkeeping for one in-flight cancellable workflow.

    Invariant: the slot is empty or holds exactly one live token.
    """

    def __init__(self, name: str):
        self.name = name
        self._token: Optional[CancellationToken] = None

    @property
    def active(self) -> bool:
        return self._token is not None

    @property
    def token(self) -> Optional[CancellationToken]:
        return self._token

    def try_open(self, label: str) -> Optional[CancellationToken]:
        """Return a fresh token, or None if the slot is already occupied."""
        if self._token is not None:
            return None
        self._token = CancellationToken(f"{self.name}:{label}")
        return self._token

    def release(self, token: CancellationToken) -> None:
        """Clear the slot, but only if it still holds this token."""
        if self._token is token:
            self._token = None

    def cancel(self) -> bool:
        """Signal and detach the current token. Returns False if the slot was empty."""
        token, self._token = self._token, None
        if token is None:
            return False
        token.cancel()
        logger.debug(f"Cancelled {token!r}")
        return True
