"""Retry strategy with exponential backoff for AWS operations."""

import random
from typing import Callable, TypeVar, Optional, Tuple
from botocore.exceptions import ClientError

from rds_bluegreen.utils.deadline import Deadline
from rds_bluegreen.utils.errors import RetryTimeoutError, aws_error_code, is_aws_error
from rds_bluegreen.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

# (error code, message substring) pairs for RDS eventual-consistency faults
IAM_ROLE_PROPAGATION = (
    'InvalidParameterValue',
    'IAM role ARN value is invalid or does not include the required permissions',
)
STORAGE_OPTIMIZATION = (
    'InvalidParameterCombination',
    'previous storage change is being optimized',
)
DELETION_PROTECTION_PENDING = (
    'InvalidParameterCombination',
    'disable deletion pro',
)


def retry_on(*matchers: Tuple[str, Optional[str]]) -> Callable[[Exception], bool]:
    """Build a predicate matching errors by AWS code and message substring.

    Args:
        *matchers: ``(code, message)`` pairs; a ``None`` message matches any

    Returns:
        Predicate returning True for retryable errors
    """
    def predicate(error: Exception) -> bool:
        return any(is_aws_error(error, code, message) for code, message in matchers)

    return predicate


class RetryStrategy:
    """Implements exponential backoff retry strategy for transient errors."""

    # AWS error codes that should always trigger a retry
    RETRYABLE_ERROR_CODES = {
        'RequestTimeout',
        'ServiceUnavailable',
        'ThrottlingException',
        'Throttling',
        'RequestThrottled',
        'RequestLimitExceeded',
        'TooManyRequestsException',
        'InternalError',
        'InternalFailure',
    }

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        jitter: bool = True
    ):
        """Initialize retry strategy.

        Args:
            base_delay: Base delay in seconds for first retry
            max_delay: Maximum delay in seconds between retries
            exponential_base: Base for exponential backoff calculation
            jitter: Whether to add random jitter to delay
        """
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

    def should_retry(
        self,
        error: Exception,
        retryable: Optional[Callable[[Exception], bool]] = None
    ) -> bool:
        """Determine if an error should trigger a retry.

        Args:
            error: The exception that occurred
            retryable: Operation-specific predicate for eventual-consistency faults

        Returns:
            True if the error is retryable
        """
        if isinstance(error, (ConnectionError, TimeoutError)):
            return True

        if aws_error_code(error) in self.RETRYABLE_ERROR_CODES:
            return True

        if retryable is not None and retryable(error):
            return True

        return False

    def get_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-indexed)

        Returns:
            Delay in seconds before next retry
        """
        delay = min(
            self.base_delay * (self.exponential_base ** attempt),
            self.max_delay
        )

        # Add jitter if enabled (random value between 0 and 10% of delay)
        if self.jitter:
            delay += random.uniform(0, delay * 0.1)

        return delay

    def execute_until(
        self,
        func: Callable[[], T],
        deadline: Deadline,
        timeout: Optional[float] = None,
        retryable: Optional[Callable[[Exception], bool]] = None,
        operation: str = 'operation'
    ) -> T:
        """Execute a function, retrying transient errors within a time budget.

        The budget is ``min(timeout, deadline.remaining())``. Non-retryable
        errors propagate unchanged.

        Args:
            func: Zero-argument callable to execute
            deadline: Deadline of the enclosing operation
            timeout: Optional cap on this retry loop
            retryable: Operation-specific retry predicate
            operation: Name used in log and error messages

        Returns:
            Result of the function call

        Raises:
            RetryTimeoutError: If the budget runs out while still failing
        """
        budget = deadline.remaining() if timeout is None else min(timeout, deadline.remaining())
        ends_at = deadline.now() + budget
        attempt = 0

        while True:
            deadline.check_cancelled(operation)
            try:
                result = func()
                if attempt > 0:
                    logger.info(f"{operation} succeeded after {attempt} retries")
                return result

            except Exception as e:
                if not self.should_retry(e, retryable):
                    raise

                left = ends_at - deadline.now()
                if left <= 0:
                    logger.error(f"{operation}: retry budget of {budget:.0f}s exhausted")
                    raise RetryTimeoutError(
                        f"{operation}: timeout while retrying: {self._get_error_info(e)}",
                        timeout=budget,
                        cause=e
                    ) from e

                delay = min(self.get_delay(attempt), left)
                logger.warning(
                    f"{operation} attempt {attempt + 1} failed: {self._get_error_info(e)}. "
                    f"Retrying in {delay:.2f}s..."
                )
                deadline.sleep(delay)
                attempt += 1

    def _get_error_info(self, error: Exception) -> str:
        """Extract useful error information for logging."""
        if isinstance(error, ClientError):
            error_code = error.response.get('Error', {}).get('Code', 'Unknown')
            error_message = error.response.get('Error', {}).get('Message', str(error))
            return f"{error_code}: {error_message}"

        return f"{type(error).__name__}: {str(error)}"
