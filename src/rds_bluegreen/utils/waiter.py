"""Generic state-change waiter used for every remote status poll."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, FrozenSet, Iterable, Optional, Tuple

from rds_bluegreen.utils.deadline import Deadline
from rds_bluegreen.utils.errors import NotFoundError, UnexpectedStateError, WaitTimeoutError
from rds_bluegreen.utils.logging import get_logger

logger = get_logger(__name__)

# Returns (record, status); a None status means the object is absent
RefreshFunc = Callable[[], Tuple[Any, Optional[Enum]]]


@dataclass
class WaiterOptions:
    """Polling cadence for a waiter."""
    poll_interval: float = 10.0
    delay: float = 60.0
    continuous_target_occurence: int = 1
    not_found_checks: int = 20

    def with_delay(self, delay: Optional[float]) -> "WaiterOptions":
        """Copy of these options with a different initial delay."""
        if delay is None:
            return self
        return WaiterOptions(
            poll_interval=self.poll_interval,
            delay=delay,
            continuous_target_occurence=self.continuous_target_occurence,
            not_found_checks=self.not_found_checks,
        )


def _format_states(states: Iterable[Enum]) -> str:
    names = sorted(str(state.value) for state in states)
    return ', '.join(names) if names else '(absent)'


class StateChangeWaiter:
    """Polls a refresh function until a target state, a failure, or a timeout.

    An empty target set means "wait until the object is gone".
    """

    def __init__(
        self,
        pending: Iterable[Enum],
        target: Iterable[Enum],
        refresh: RefreshFunc,
        timeout: float,
        options: Optional[WaiterOptions] = None,
        failure_detail: Optional[Callable[[Any], Optional[str]]] = None,
        description: str = 'resource'
    ):
        """Initialize waiter.

        Args:
            pending: States that keep the waiter polling
            target: States that end the wait successfully
            refresh: Prober returning (record, status)
            timeout: Upper bound in seconds for this wait
            options: Polling cadence
            failure_detail: Extracts the remote status detail from a record
            description: Name used in log and error messages
        """
        self.pending: FrozenSet[Enum] = frozenset(pending)
        self.target: FrozenSet[Enum] = frozenset(target)
        self.refresh = refresh
        self.timeout = timeout
        self.options = options or WaiterOptions()
        self.failure_detail = failure_detail
        self.description = description

    def wait(self, deadline: Deadline) -> Any:
        """Block until the target state is observed.

        Args:
            deadline: Deadline of the enclosing operation; bounds the wait and
                carries the cancellation signal

        Returns:
            The last record returned by the refresh function

        Raises:
            UnexpectedStateError: On a status outside pending and target
            NotFoundError: If the object stays absent while a target is expected
            WaitTimeoutError: If the budget runs out while still pending
            OperationCancelledError: If the deadline is cancelled
        """
        budget = min(self.timeout, deadline.remaining())
        ends_at = deadline.now() + budget
        target_names = _format_states(self.target)

        logger.debug(
            f"Waiting up to {budget:.0f}s for {self.description} to reach {target_names}"
        )

        if self.options.delay > 0:
            deadline.sleep(min(self.options.delay, budget))

        not_found = 0
        target_hits = 0
        last_status: Optional[Enum] = None
        record: Any = None

        while True:
            deadline.check_cancelled(self.description)
            record, status = self.refresh()

            if status is None:
                if not self.target:
                    return record

                not_found += 1
                if not_found > self.options.not_found_checks:
                    raise NotFoundError(
                        f"{self.description}: couldn't find resource "
                        f"({self.options.not_found_checks} retries)"
                    )
            else:
                not_found = 0
                last_status = status

                if status in self.target:
                    target_hits += 1
                    if target_hits >= self.options.continuous_target_occurence:
                        return record
                elif status in self.pending:
                    target_hits = 0
                else:
                    detail = self.failure_detail(record) if self.failure_detail and record else None
                    raise UnexpectedStateError(
                        str(status.value),
                        expected=[str(state.value) for state in self.target],
                        detail=detail
                    )

            left = ends_at - deadline.now()
            if left <= 0:
                last = str(last_status.value) if last_status is not None else '(absent)'
                raise WaitTimeoutError(
                    f"timeout while waiting for {self.description} to become "
                    f"'{target_names}' (last state: '{last}', timeout: {budget:.0f}s)",
                    last_state=last,
                    timeout=budget
                )

            deadline.sleep(min(self.options.poll_interval, left))
