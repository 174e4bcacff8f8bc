import threading
from unittest.mock import Mock

import pytest

from rds_bluegreen.utils.deadline import Deadline
from rds_bluegreen.utils.errors import (
    DeploymentError,
    ErrorCategory,
    ErrorContext,
    ErrorHandler,
    NotFoundError,
    OperationCancelledError,
    RetryTimeoutError,
    UnknownStatusError,
    is_aws_error,
)
from rds_bluegreen.utils.retry import (
    DELETION_PROTECTION_PENDING,
    IAM_ROLE_PROPAGATION,
    RetryStrategy,
    retry_on,
)

from conftest import client_error

IAM_NOT_READY = client_error(
    'InvalidParameterValue',
    'IAM role ARN value is invalid or does not include the required permissions for: ROLE',
)


@pytest.fixture
def strategy() -> RetryStrategy:
    """Backoff without jitter so delays are predictable."""
    return RetryStrategy(base_delay=1.0, max_delay=30.0, jitter=False)


class TestDeadline:
    def test_remaining_shrinks_with_clock(self, clock):
        deadline = Deadline(100, clock=clock, sleep=clock.sleep)

        clock.now += 30

        assert deadline.elapsed() == 30
        assert deadline.remaining() == 70
        assert not deadline.expired()

    def test_remaining_never_negative(self, clock):
        deadline = Deadline(10, clock=clock, sleep=clock.sleep)

        clock.now += 50

        assert deadline.remaining() == 0
        assert deadline.expired()

    def test_shared_cancel_event(self, clock):
        event = threading.Event()
        deadline = Deadline(100, clock=clock, sleep=clock.sleep, cancel_event=event)

        event.set()

        assert deadline.cancelled
        with pytest.raises(OperationCancelledError):
            deadline.sleep(5)
        assert clock.sleeps == []

    def test_check_cancelled_names_operation(self, clock):
        deadline = Deadline(100, clock=clock)
        deadline.cancel()

        with pytest.raises(OperationCancelledError, match="switchover: cancelled"):
            deadline.check_cancelled('switchover')

    def test_default_sleep_returns_early_on_cancel(self):
        deadline = Deadline(100)
        deadline.cancel()

        with pytest.raises(OperationCancelledError):
            deadline.sleep(60)


class TestRetryStrategy:
    def test_returns_first_success(self, strategy, make_deadline):
        func = Mock(return_value='ok')

        assert strategy.execute_until(func, make_deadline()) == 'ok'
        func.assert_called_once_with()

    def test_retries_matching_error(self, strategy, make_deadline, clock):
        func = Mock(side_effect=[IAM_NOT_READY, IAM_NOT_READY, 'done'])

        result = strategy.execute_until(
            func, make_deadline(), retryable=retry_on(IAM_ROLE_PROPAGATION)
        )

        assert result == 'done'
        assert func.call_count == 3
        assert clock.sleeps == [1.0, 2.0]

    def test_non_matching_error_propagates(self, strategy, make_deadline):
        error = client_error('InvalidParameterValue', 'engine version is not supported')
        func = Mock(side_effect=error)

        with pytest.raises(type(error)) as exc_info:
            strategy.execute_until(func, make_deadline(), retryable=retry_on(IAM_ROLE_PROPAGATION))

        assert exc_info.value is error
        func.assert_called_once_with()

    def test_throttling_is_always_retried(self, strategy, make_deadline):
        func = Mock(side_effect=[client_error('Throttling', 'Rate exceeded'), 'ok'])

        assert strategy.execute_until(func, make_deadline()) == 'ok'

    def test_budget_exhaustion_raises_retry_timeout(self, strategy, make_deadline, clock):
        func = Mock(side_effect=IAM_NOT_READY)

        with pytest.raises(RetryTimeoutError) as exc_info:
            strategy.execute_until(
                func, make_deadline(), timeout=10, retryable=retry_on(IAM_ROLE_PROPAGATION)
            )

        assert exc_info.value.cause is IAM_NOT_READY
        assert exc_info.value.timeout == 10
        assert sum(clock.sleeps) == pytest.approx(10)

    def test_delay_is_capped(self):
        strategy = RetryStrategy(base_delay=1.0, max_delay=30.0, jitter=False)

        assert strategy.get_delay(0) == 1.0
        assert strategy.get_delay(3) == 8.0
        assert strategy.get_delay(10) == 30.0


class TestErrors:
    def test_is_aws_error_matches_message_substring(self):
        error = client_error(
            'InvalidParameterCombination',
            'Cannot delete protected Cluster, please disable deletion protection and try again.',
        )
        code, message = DELETION_PROTECTION_PENDING

        assert is_aws_error(error, code, message)
        assert is_aws_error(error, code)
        assert not is_aws_error(error, 'DBClusterNotFoundFault')
        assert not is_aws_error(ValueError('x'), code)

    def test_unknown_status_error(self):
        error = UnknownStatusError('hibernating', kind='blue/green deployment')

        assert error.state == 'hibernating'
        assert error.category == ErrorCategory.INVALID_STATE
        assert "unrecognized blue/green deployment status" in error.message

    def test_handle_exception_maps_client_error(self):
        handler = ErrorHandler()
        error = client_error('DBClusterNotFoundFault', 'DBCluster orders not found', 'DescribeDBClusters')

        result = handler.handle_exception(error, ErrorContext(resource_id='orders', operation='read'))

        assert isinstance(result, NotFoundError)
        assert result.category == ErrorCategory.NOT_FOUND
        assert result.message == 'DB cluster not found: DBCluster orders not found'
        assert result.context.request_id == 'req-1'
        assert result.context.aws_operation == 'DescribeDBClusters'
        assert result.cause is error

    def test_handle_exception_fills_missing_context(self):
        handler = ErrorHandler()
        error = NotFoundError('blue/green deployment bgd-1 not found')

        result = handler.handle_exception(
            error, ErrorContext(resource_id='orders', deployment_id='bgd-1', operation='switchover')
        )

        assert result is error
        assert result.context.resource_id == 'orders'
        assert result.context.operation == 'switchover'
        assert "Resource: orders" in result.to_user_message()

    def test_handle_exception_wraps_unknown_errors(self):
        result = ErrorHandler().handle_exception(RuntimeError('boom'))

        assert isinstance(result, DeploymentError)
        assert result.category == ErrorCategory.UNKNOWN
        assert result.message == 'boom'
