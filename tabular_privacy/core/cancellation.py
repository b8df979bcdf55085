"""Cooperative cancellation signal shared between a caller and a running job."""

import threading

from .errors import Cancelled


class CancellationToken:
    """Checked by long-running loops between iterations."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, operation: str = "run"):
        if self._event.is_set():
            raise Cancelled(f"{operation} cancelled")
