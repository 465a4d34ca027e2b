"""Cooperative cancellation for migration runs."""

import threading

from ..models.migration import MigrationError


class RunCancelled(MigrationError):
    """A run was stopped by its cancellation token."""


class CancellationToken:
    """Run-scoped stop signal observed between stages and download chunks."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled("Run cancelled")

    def wait(self, seconds: float) -> None:
        """Sleep up to ``seconds``, waking early (and raising) when cancelled."""
        if seconds > 0 and self._event.wait(seconds):
            raise RunCancelled("Run cancelled")
        self.raise_if_cancelled()
