"""Out-of-band cancellation signals keyed by report id."""

import logging
import threading

logger = logging.getLogger(__name__)


class CancellationRegistry:
    """Thread-safe set of cancelled report ids.

    The API signals from request threads; the worker's event loop checks at
    phase boundaries. Signaling twice is a no-op.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._cancelled = set()

    def cancel(self, report_id) -> None:
        with self._lock:
            if report_id in self._cancelled:
                return
            self._cancelled.add(report_id)
        logger.info(f"Cancellation signaled for report {report_id}")

    def is_cancelled(self, report_id) -> bool:
        with self._lock:
            return report_id in self._cancelled

    def discard(self, report_id) -> None:
        """Forget a signal once its run has finished."""
        with self._lock:
            self._cancelled.discard(report_id)


# Shared between the API and the in-process worker
cancellations = CancellationRegistry()


def get_cancellations() -> CancellationRegistry:
    """FastAPI dependency returning the process-wide registry."""
    return cancellations
