"""Utility modules for logging, errors, retries, waiting and AWS clients."""

from rds_bluegreen.utils.aws_client import AWSClientManager, AWSCredentials
from rds_bluegreen.utils.deadline import Deadline
from rds_bluegreen.utils.retry import RetryStrategy, retry_on
from rds_bluegreen.utils.waiter import StateChangeWaiter, WaiterOptions
from rds_bluegreen.utils.errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    DeploymentError,
    ConfigurationError,
    ValidationError,
    NotFoundError,
    AlreadyExistsError,
    UnexpectedStateError,
    UnknownStatusError,
    WaitTimeoutError,
    RetryTimeoutError,
    OperationCancelledError,
    ErrorHandler,
)
from rds_bluegreen.utils.logging import get_logger, setup_logging

__all__ = [
    # AWS Client
    'AWSClientManager',
    'AWSCredentials',

    # Timing
    'Deadline',
    'RetryStrategy',
    'retry_on',
    'StateChangeWaiter',
    'WaiterOptions',

    # Errors
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'DeploymentError',
    'ConfigurationError',
    'ValidationError',
    'NotFoundError',
    'AlreadyExistsError',
    'UnexpectedStateError',
    'UnknownStatusError',
    'WaitTimeoutError',
    'RetryTimeoutError',
    'OperationCancelledError',
    'ErrorHandler',

    # Logging
    'get_logger',
    'setup_logging',
]
