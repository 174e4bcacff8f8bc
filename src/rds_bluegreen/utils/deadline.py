"""Remaining-time budget threaded through sequential blocking operations."""

import threading
import time
from typing import Callable, Optional

from rds_bluegreen.utils.errors import OperationCancelledError


class Deadline:
    """Tracks the time left for one Create/Update/Delete operation.

    Every wait in a workflow run is handed ``remaining()`` rather than a fresh
    timeout, so sequential waits share a single budget. The deadline also
    carries the cancellation signal for the run: ``sleep`` returns early and
    raises once ``cancel()`` has been called.
    """

    def __init__(
        self,
        timeout: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
        cancel_event: Optional[threading.Event] = None
    ):
        """Initialize deadline.

        Args:
            timeout: Total budget in seconds
            clock: Monotonic clock returning seconds
            sleep: Sleep function; defaults to waiting on the cancel event
            cancel_event: Event shared with the caller to request cancellation
        """
        self.timeout = timeout
        self._clock = clock
        self._sleep = sleep
        self._cancel_event = cancel_event or threading.Event()
        self._started = clock()

    def now(self) -> float:
        """Current reading of the deadline's clock."""
        return self._clock()

    def elapsed(self) -> float:
        """Seconds consumed since the deadline was created."""
        return self._clock() - self._started

    def remaining(self) -> float:
        """Seconds left in the budget, never negative."""
        return max(0.0, self.timeout - self.elapsed())

    def expired(self) -> bool:
        """Check whether the budget is exhausted."""
        return self.remaining() <= 0

    def cancel(self) -> None:
        """Request cancellation of every wait using this deadline."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def check_cancelled(self, operation: Optional[str] = None) -> None:
        """Raise if cancellation was requested.

        Raises:
            OperationCancelledError: If the deadline was cancelled
        """
        if self.cancelled:
            message = f"{operation}: cancelled" if operation else "operation cancelled"
            raise OperationCancelledError(message)

    def sleep(self, seconds: float) -> None:
        """Block for up to ``seconds``, aborting promptly on cancellation.

        Raises:
            OperationCancelledError: If cancelled before or during the sleep
        """
        self.check_cancelled()
        if seconds <= 0:
            return

        if self._sleep is None:
            if self._cancel_event.wait(seconds):
                raise OperationCancelledError()
            return

        self._sleep(seconds)
        self.check_cancelled()
