"""Error handling framework for blue/green deployment operations."""

from typing import Optional, Dict, Any, List, Iterable
from enum import Enum
from dataclasses import dataclass
from botocore.exceptions import ClientError, NoCredentialsError, PartialCredentialsError
from rds_bluegreen.utils.logging import get_logger

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """Categories of errors that can occur during a deployment workflow."""
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    AWS = "aws"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    INVALID_STATE = "invalid_state"
    TRANSIENT = "transient"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    CREDENTIAL = "credential"
    PERMISSION = "permission"
    STATE = "state"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    CRITICAL = "critical"  # Workflow cannot continue
    ERROR = "error"  # Step failed
    WARNING = "warning"  # Non-fatal issue
    INFO = "info"  # Informational message


@dataclass
class ErrorContext:
    """Context information for an error."""
    resource_id: Optional[str] = None
    deployment_id: Optional[str] = None
    operation: Optional[str] = None
    aws_operation: Optional[str] = None
    request_id: Optional[str] = None
    additional_info: Optional[Dict[str, Any]] = None


class DeploymentError(Exception):
    """Base exception for blue/green deployment errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        """Initialize deployment error.

        Args:
            message: Human-readable error message
            category: Error category
            severity: Error severity
            context: Additional context about the error
            cause: Original exception that caused this error
            suggestions: List of suggested fixes
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = suggestions or []

    def to_user_message(self) -> str:
        """Convert error to user-friendly message.

        Returns:
            Formatted error message for display to user
        """
        lines = [f"{self.severity.value.upper()}: {self.message}"]

        if self.context.resource_id:
            lines.append(f"   Resource: {self.context.resource_id}")
        if self.context.deployment_id:
            lines.append(f"   Deployment: {self.context.deployment_id}")
        if self.context.operation:
            lines.append(f"   Operation: {self.context.operation}")

        if self.cause:
            lines.append(f"   Cause: {str(self.cause)}")

        if self.suggestions:
            lines.append("\nSuggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'context': {
                'resource_id': self.context.resource_id,
                'deployment_id': self.context.deployment_id,
                'operation': self.context.operation,
                'aws_operation': self.context.aws_operation,
                'request_id': self.context.request_id,
                'additional_info': self.context.additional_info
            },
            'cause': str(self.cause) if self.cause else None,
            'suggestions': self.suggestions
        }


class ConfigurationError(DeploymentError):
    """Error in configuration file or settings."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class ValidationError(DeploymentError):
    """Plan-time validation failure."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )


class NotFoundError(DeploymentError):
    """Remote object does not exist."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.NOT_FOUND,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )


class AlreadyExistsError(DeploymentError):
    """Remote object already exists."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.ALREADY_EXISTS,
            severity=ErrorSeverity.WARNING,
            **kwargs
        )


class UnexpectedStateError(DeploymentError):
    """A remote object reached a state outside the pending and target sets."""

    def __init__(
        self,
        state: str,
        expected: Iterable[str] = (),
        detail: Optional[str] = None,
        **kwargs
    ):
        self.state = state
        self.expected = sorted(expected)
        self.detail = detail

        message = f"unexpected state '{state}', wanted target '{', '.join(self.expected)}'"
        if detail:
            message = f"{message}. last error: {detail}"

        super().__init__(
            message,
            category=ErrorCategory.INVALID_STATE,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )


class UnknownStatusError(UnexpectedStateError):
    """The remote API returned a status string this tool does not model."""

    def __init__(self, raw_status: str, kind: str, **kwargs):
        self.kind = kind
        super().__init__(
            raw_status,
            detail=f"unrecognized {kind} status",
            **kwargs
        )


class WaitTimeoutError(DeploymentError):
    """A wait or retry loop ran out of time while still pending."""

    def __init__(
        self,
        message: str,
        last_state: Optional[str] = None,
        timeout: Optional[float] = None,
        **kwargs
    ):
        self.last_state = last_state
        self.timeout = timeout
        super().__init__(
            message,
            category=ErrorCategory.TIMEOUT,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )


class RetryTimeoutError(WaitTimeoutError):
    """Retries of a transient failure exhausted the time budget."""


class OperationCancelledError(DeploymentError):
    """The caller cancelled the operation."""

    def __init__(self, message: str = "operation cancelled", **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CANCELLED,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


def aws_error_code(error: Exception) -> Optional[str]:
    """Return the AWS error code of a botocore ClientError, if any."""
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Code')
    return None


def aws_error_message(error: Exception) -> str:
    """Return the AWS error message of a botocore ClientError."""
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Message', '')
    return str(error)


def is_aws_error(error: Exception, code: str, message: Optional[str] = None) -> bool:
    """Check an error's AWS code and, optionally, a substring of its message.

    Args:
        error: Exception to inspect
        code: Expected AWS error code
        message: Substring the error message must contain

    Returns:
        True if the error matches
    """
    if aws_error_code(error) != code:
        return False
    if message is None:
        return True
    return message in aws_error_message(error)


class ErrorHandler:
    """Handles and categorizes errors from AWS and other sources."""

    # Mapping of AWS error codes to error categories and suggestions
    AWS_ERROR_MAPPING = {
        'InvalidClientTokenId': {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'AWS credentials are invalid or expired',
            'suggestions': [
                'Check that your AWS credentials are correctly configured',
                'Verify credentials using: aws sts get-caller-identity',
            ]
        },
        'ExpiredToken': {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'AWS session token has expired',
            'suggestions': [
                'Refresh your AWS session credentials',
            ]
        },
        'AccessDenied': {
            'category': ErrorCategory.PERMISSION,
            'message': 'Access denied - insufficient permissions',
            'suggestions': [
                'Check IAM policies attached to your user/role',
                'Blue/green deployments need rds:CreateBlueGreenDeployment, '
                'rds:SwitchoverBlueGreenDeployment and rds:DeleteBlueGreenDeployment',
            ]
        },
        'DBClusterNotFoundFault': {
            'category': ErrorCategory.NOT_FOUND,
            'message': 'DB cluster not found',
            'suggestions': [
                'Verify the cluster identifier and region',
                'Check if the cluster was deleted or renamed outside this tool',
            ]
        },
        'DBInstanceNotFound': {
            'category': ErrorCategory.NOT_FOUND,
            'message': 'DB instance not found',
            'suggestions': [
                'Verify the instance still belongs to the cluster',
            ]
        },
        'BlueGreenDeploymentNotFoundFault': {
            'category': ErrorCategory.NOT_FOUND,
            'message': 'Blue/green deployment not found',
            'suggestions': [
                'Run with create_deployment enabled to create a new deployment',
            ]
        },
        'BlueGreenDeploymentAlreadyExistsFault': {
            'category': ErrorCategory.ALREADY_EXISTS,
            'message': 'Blue/green deployment already exists',
            'suggestions': [
                'The existing deployment is adopted on the next apply',
            ]
        },
        'InvalidBlueGreenDeploymentStateFault': {
            'category': ErrorCategory.INVALID_STATE,
            'message': 'Blue/green deployment is not in a valid state for this operation',
            'suggestions': [
                'Describe the deployment and check its status details',
                'Wait for the deployment to reach AVAILABLE before switching over',
            ]
        },
        'InvalidDBClusterStateFault': {
            'category': ErrorCategory.INVALID_STATE,
            'message': 'DB cluster is not in a valid state for this operation',
            'suggestions': [
                'Wait for the cluster to become available and retry',
            ]
        },
        'InvalidDBInstanceState': {
            'category': ErrorCategory.INVALID_STATE,
            'message': 'DB instance is not in a valid state for this operation',
            'suggestions': [
                'Wait for the instance to become available and retry',
            ]
        },
        'SourceClusterNotSupportedFault': {
            'category': ErrorCategory.VALIDATION,
            'message': 'Source cluster does not support blue/green deployments',
            'suggestions': [
                'Check the engine and engine version of the source cluster',
                'Enable binary logging through the cluster parameter group',
            ]
        },
        'Throttling': {
            'category': ErrorCategory.TRANSIENT,
            'message': 'API rate limit exceeded',
            'suggestions': [
                'Reduce the number of resources applied in parallel',
            ]
        },
        'InvalidParameterValue': {
            'category': ErrorCategory.VALIDATION,
            'message': 'Invalid parameter value',
            'suggestions': [
                'Check parameter format and constraints',
            ]
        },
        'InvalidParameterCombination': {
            'category': ErrorCategory.VALIDATION,
            'message': 'Invalid parameter combination',
            'suggestions': [
                'Review the parameters passed to the operation',
            ]
        },
    }

    # Categories raised as their dedicated error classes
    CATEGORY_ERRORS = {
        ErrorCategory.NOT_FOUND: NotFoundError,
        ErrorCategory.ALREADY_EXISTS: AlreadyExistsError,
    }

    def __init__(self):
        """Initialize error handler."""
        self.logger = get_logger(__name__)

    def handle_exception(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None
    ) -> DeploymentError:
        """Handle an exception and convert to DeploymentError.

        Args:
            error: The exception to handle
            context: Additional context about where the error occurred

        Returns:
            DeploymentError with categorization and suggestions
        """
        context = context or ErrorContext()

        if isinstance(error, DeploymentError):
            if error.context.resource_id is None:
                error.context.resource_id = context.resource_id
            if error.context.operation is None:
                error.context.operation = context.operation
            if error.context.deployment_id is None:
                error.context.deployment_id = context.deployment_id
            return error

        if isinstance(error, ClientError):
            return self._handle_aws_error(error, context)

        if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
            return DeploymentError(
                message=f'Credential error: {str(error)}',
                category=ErrorCategory.CREDENTIAL,
                severity=ErrorSeverity.CRITICAL,
                context=context,
                cause=error,
                suggestions=[
                    'Configure AWS credentials using: aws configure',
                    'Specify a profile with --profile flag',
                ]
            )

        return DeploymentError(
            message=str(error),
            category=ErrorCategory.UNKNOWN,
            severity=ErrorSeverity.ERROR,
            context=context,
            cause=error,
            suggestions=['Check logs for more details']
        )

    def _handle_aws_error(
        self,
        error: ClientError,
        context: ErrorContext
    ) -> DeploymentError:
        """Handle AWS ClientError.

        Args:
            error: The ClientError
            context: Error context

        Returns:
            Categorized DeploymentError
        """
        error_code = error.response.get('Error', {}).get('Code', 'Unknown')
        error_message = error.response.get('Error', {}).get('Message', str(error))
        request_id = error.response.get('ResponseMetadata', {}).get('RequestId')

        context.request_id = request_id
        context.aws_operation = getattr(error, 'operation_name', None)

        error_info = self.AWS_ERROR_MAPPING.get(error_code)

        if error_info:
            error_class = self.CATEGORY_ERRORS.get(error_info['category'])
            if error_class is not None:
                return error_class(
                    f"{error_info['message']}: {error_message}",
                    context=context,
                    cause=error,
                    suggestions=error_info['suggestions']
                )

            return DeploymentError(
                message=f"{error_info['message']}: {error_message}",
                category=error_info['category'],
                severity=ErrorSeverity.ERROR,
                context=context,
                cause=error,
                suggestions=error_info['suggestions']
            )

        return DeploymentError(
            message=f"AWS Error ({error_code}): {error_message}",
            category=ErrorCategory.AWS,
            severity=ErrorSeverity.ERROR,
            context=context,
            cause=error,
            suggestions=[
                'Check AWS documentation for this error code',
                f'AWS Request ID: {request_id}',
            ]
        )

    def log_error(self, error: DeploymentError):
        """Log an error with appropriate level.

        Args:
            error: The error to log
        """
        log_message = error.to_user_message()
        extra = {'operation': error.context.operation}
        if error.context.resource_id:
            extra['resource_id'] = error.context.resource_id

        if error.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.ERROR):
            self.logger.error(log_message, extra=extra)
        elif error.severity == ErrorSeverity.WARNING:
            self.logger.warning(log_message, extra=extra)
        else:
            self.logger.info(log_message, extra=extra)

        self.logger.debug(f"Error details: {error.to_dict()}")
