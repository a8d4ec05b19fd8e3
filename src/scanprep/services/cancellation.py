"""
ScanPrep - Cooperative Cancellation

A cancellation token passed explicitly into every multi-stage algorithm.
Algorithms poll it at stage boundaries (never per pixel) and raise
OperationCancelledError when it is set.
"""

import logging
import threading

from scanprep.utils.exceptions import OperationCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Process-local cancellation signal backed by ``threading.Event``.

    The signal is set at most once and never cleared, so a token can be
    shared between the thread that requests the stop and the worker that
    observes it.
    """

    def __init__(self) -> None:
        self.cancel_event = threading.Event()

    @classmethod
    def none(cls) -> "CancellationToken":
        """Return a fresh token that nobody will ever cancel."""
        return cls()

    @property
    def is_cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        """Request cancellation. Calling it again has no further effect."""
        if not self.cancel_event.is_set():
            logger.info("Cancellation requested")
            self.cancel_event.set()

    def raise_if_cancelled(self, stage: str | None = None) -> None:
        """Raise OperationCancelledError if cancellation was requested.

        Args:
            stage: Name of the stage boundary, reported in the error
        """
        if self.cancel_event.is_set():
            logger.debug(f"Cancellation observed at stage: {stage}")
            raise OperationCancelledError(stage)


def ensure_token(token: CancellationToken | None) -> CancellationToken:
    """Substitute a never-cancelled token for ``None``."""
    return token if token is not None else CancellationToken.none()
