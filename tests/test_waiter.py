from enum import Enum

import pytest

from rds_bluegreen.utils.deadline import Deadline
from rds_bluegreen.utils.errors import (
    NotFoundError,
    OperationCancelledError,
    UnexpectedStateError,
    WaitTimeoutError,
)
from rds_bluegreen.utils.waiter import StateChangeWaiter, WaiterOptions


class Light(str, Enum):
    RED = 'red'
    AMBER = 'amber'
    GREEN = 'green'
    BROKEN = 'broken'


def scripted_refresh(*statuses):
    """Refresh function yielding one (record, status) pair per call.

    ``None`` entries report an absent object. The last entry repeats.
    """
    remaining = list(statuses)

    def refresh():
        status = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        if status is None:
            return None, None
        return {'status': status.value, 'detail': f"{status.value} detail"}, status

    return refresh


@pytest.fixture
def deadline(clock) -> Deadline:
    """One hour budget on the fake clock."""
    return Deadline(3600, clock=clock, sleep=clock.sleep)


def make_waiter(refresh, target=(Light.GREEN,), pending=(Light.RED, Light.AMBER), timeout=600, **options):
    return StateChangeWaiter(
        pending=pending,
        target=target,
        refresh=refresh,
        timeout=timeout,
        options=WaiterOptions(**{'delay': 0, **options}),
        failure_detail=lambda record: record['detail'],
        description='traffic light',
    )


def test_returns_record_when_target_reached(deadline, clock):
    waiter = make_waiter(scripted_refresh(Light.RED, Light.AMBER, Light.GREEN))

    record = waiter.wait(deadline)

    assert record['status'] == 'green'
    assert clock.sleeps == [10.0, 10.0]


def test_initial_delay_is_slept_before_first_poll(deadline, clock):
    waiter = make_waiter(scripted_refresh(Light.GREEN), delay=60)

    waiter.wait(deadline)

    assert clock.sleeps == [60]


def test_continuous_target_occurence_resets_on_pending(deadline, clock):
    refresh = scripted_refresh(Light.GREEN, Light.AMBER, Light.GREEN, Light.GREEN, Light.GREEN)
    waiter = make_waiter(refresh, continuous_target_occurence=3)

    waiter.wait(deadline)

    assert len(clock.sleeps) == 4


def test_unexpected_status_fails_with_detail(deadline):
    waiter = make_waiter(scripted_refresh(Light.RED, Light.BROKEN))

    with pytest.raises(UnexpectedStateError) as exc_info:
        waiter.wait(deadline)

    assert exc_info.value.state == 'broken'
    assert exc_info.value.expected == ['green']
    assert "last error: broken detail" in str(exc_info.value)


def test_absent_object_satisfies_empty_target(deadline, clock):
    waiter = make_waiter(
        scripted_refresh(Light.RED, None),
        target=(),
        pending=list(Light),
    )

    assert waiter.wait(deadline) is None
    assert clock.sleeps == [10.0]


def test_absent_object_fails_after_not_found_checks(deadline):
    waiter = make_waiter(scripted_refresh(None), not_found_checks=2)

    with pytest.raises(NotFoundError) as exc_info:
        waiter.wait(deadline)

    assert "2 retries" in str(exc_info.value)


def test_timeout_reports_last_state(deadline, clock):
    waiter = make_waiter(scripted_refresh(Light.AMBER), timeout=35)

    with pytest.raises(WaitTimeoutError) as exc_info:
        waiter.wait(deadline)

    assert exc_info.value.last_state == 'amber'
    assert exc_info.value.timeout == 35
    assert sum(clock.sleeps) == pytest.approx(35)


def test_budget_is_bounded_by_deadline(clock):
    deadline = Deadline(25, clock=clock, sleep=clock.sleep)
    waiter = make_waiter(scripted_refresh(Light.AMBER), timeout=600)

    with pytest.raises(WaitTimeoutError) as exc_info:
        waiter.wait(deadline)

    assert exc_info.value.timeout == 25
    assert deadline.remaining() == 0


def test_cancelled_deadline_stops_waiting(deadline):
    deadline.cancel()
    waiter = make_waiter(scripted_refresh(Light.AMBER))

    with pytest.raises(OperationCancelledError):
        waiter.wait(deadline)


def test_with_delay_keeps_other_options():
    options = WaiterOptions(poll_interval=5, delay=60, not_found_checks=7)

    assert options.with_delay(None) is options
    changed = options.with_delay(0)
    assert changed.delay == 0
    assert changed.poll_interval == 5
    assert changed.not_found_checks == 7
