"""
Error handling and retry logic for QuickSight export operations.
"""

import time
import random
import logging
from typing import Callable, Any, Optional, List, TypeVar
from botocore.exceptions import ClientError, BotoCoreError, NoCredentialsError
from botocore.exceptions import (
    EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError, ConnectionClosedError
)

from ..models.exceptions import (
    ConfigurationError, AWSCredentialsError, QuickSightAPIError, S3Error,
    RetryExhaustedError
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

THROTTLING_ERROR_CODES = {
    'Throttling',
    'ThrottlingException',
    'TooManyRequestsException',
    'RequestLimitExceeded',
    'RateLimitExceededException',
}

# AWS error codes that should trigger retries besides throttling
RETRYABLE_ERROR_CODES = {
    'ServiceUnavailable',
    'ServiceUnavailableException',
    'RequestTimeout',
    'RequestTimeoutException',
    'InternalServerError',
    'InternalFailure',
    'InternalError',
    'SlowDown',
}

NETWORK_ERRORS = (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError, ConnectionClosedError)

# Codes QuickSight returns when a describe call is refused for an uploaded file
UNSUPPORTED_DESCRIBE_ERROR_CODES = {
    'InvalidParameterValueException',
    'UnsupportedOperationException',
    'UnsupportedUserEditionException',
}
UNSUPPORTED_DESCRIBE_MESSAGES = (
    'not supported through api',
    'uploaded file',
)


def get_error_code(error: Exception) -> Optional[str]:
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Code')
    return getattr(error, 'error_code', None)


def _http_status(error: Exception) -> Optional[int]:
    if isinstance(error, ClientError):
        return error.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
    return None


def is_throttling_error(error: Exception) -> bool:
    """True for rate limit responses from the remote API."""
    if isinstance(error, ClientError):
        return get_error_code(error) in THROTTLING_ERROR_CODES or _http_status(error) == 429
    return False


def is_retryable_error(error: Exception) -> bool:
    """True for throttling, transient server errors and network failures."""
    if is_throttling_error(error):
        return True
    if isinstance(error, NETWORK_ERRORS):
        return True
    if isinstance(error, ClientError):
        if get_error_code(error) in RETRYABLE_ERROR_CODES:
            return True
        status = _http_status(error)
        return status is not None and 500 <= status < 600
    return False


def is_unsupported_describe_error(error: Exception) -> bool:
    """
    True when QuickSight refused to describe an asset because it is an uploaded file.

    The error code must be one of UNSUPPORTED_DESCRIBE_ERROR_CODES and the message
    must name the condition; neither alone is enough.
    """
    if isinstance(error, RetryExhaustedError) and error.last_error is not None:
        error = error.last_error
    if not isinstance(error, ClientError):
        return False
    if get_error_code(error) not in UNSUPPORTED_DESCRIBE_ERROR_CODES:
        return False
    message = (error.response.get('Error', {}).get('Message') or '').lower()
    return any(fragment in message for fragment in UNSUPPORTED_DESCRIBE_MESSAGES)


class RetryPolicy:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_retries: int = 3,
                 base_delay_ms: float = 100.0,
                 max_delay_ms: float = 5000.0,
                 multiplier: float = 2.0,
                 jitter_factor: float = 0.3):
        """
        Initialize retry policy.

        Args:
            max_retries: Maximum number of retries after the first attempt
            base_delay_ms: Delay before the first retry in milliseconds
            max_delay_ms: Upper bound for any single delay in milliseconds
            multiplier: Base for exponential backoff calculation
            jitter_factor: Fraction of the delay added as random jitter
        """
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.multiplier = multiplier
        self.jitter_factor = jitter_factor

    @classmethod
    def from_config(cls, config) -> "RetryPolicy":
        return cls(
            max_retries=config.retry_max_retries,
            base_delay_ms=config.retry_base_delay_ms,
            max_delay_ms=config.retry_max_delay_ms,
            jitter_factor=config.retry_jitter_factor,
        )

    def delay_seconds(self, retry_number: int) -> float:
        """Backoff before retry number retry_number (0-based), jitter included."""
        delay = min(self.base_delay_ms * (self.multiplier ** retry_number), self.max_delay_ms)
        delay += random.uniform(0, delay * self.jitter_factor)
        return delay / 1000.0


def with_retry(operation: Callable[[], T],
               policy: Optional[RetryPolicy] = None,
               operation_name: str = 'operation',
               sleep: Callable[[float], None] = time.sleep) -> T:
    """
    Run operation, retrying retryable failures with exponential backoff.

    Non-retryable errors propagate unchanged on the first failure. When every
    retry is used up, RetryExhaustedError is raised carrying the last error.
    """
    policy = policy or RetryPolicy()
    attempt = 0

    while True:
        try:
            return operation()
        except Exception as error:
            if not is_retryable_error(error):
                raise

            if attempt >= policy.max_retries:
                logger.error(
                    f"All {attempt + 1} attempts failed for {operation_name}",
                    extra={'context': {
                        'operation': operation_name,
                        'error_code': get_error_code(error),
                        'error_type': type(error).__name__
                    }}
                )
                raise RetryExhaustedError(
                    f"{operation_name} failed after {attempt + 1} attempts: {error}",
                    attempts=attempt + 1,
                    last_error=error,
                    error_code=get_error_code(error),
                    context={'operation': operation_name}
                ) from error

            delay = policy.delay_seconds(attempt)
            logger.warning(
                f"Attempt {attempt + 1}/{policy.max_retries + 1} failed for {operation_name}, "
                f"retrying in {delay:.2f}s: {error}",
                extra={'context': {
                    'operation': operation_name,
                    'attempt': attempt + 1,
                    'throttled': is_throttling_error(error),
                    'error_type': type(error).__name__
                }}
            )
            sleep(delay)
            attempt += 1


class ErrorHandler:
    """Maps AWS errors to typed exceptions and operator remediation hints."""

    NON_RETRYABLE_ERROR_CODES = {
        'AccessDenied',
        'AccessDeniedException',
        'InvalidParameterValue',
        'InvalidParameterValueException',
        'ResourceNotFound',
        'ResourceNotFoundException',
        'ValidationException',
        'UnauthorizedOperation',
        'NoSuchBucket',
        'NoSuchKey'
    }

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def handle_api_error(self, error: Exception, operation: str,
                        service: str = 'quicksight') -> None:
        """
        Log an AWS error with context and raise the matching typed exception.

        Args:
            error: The exception that occurred
            operation: Name of the operation that failed
            service: AWS service name
        """
        if isinstance(error, RetryExhaustedError) and error.last_error is not None:
            error = error.last_error

        if isinstance(error, ClientError):
            error_code = error.response['Error']['Code']
            error_message = error.response['Error'].get('Message', '')

            self.logger.error(
                f"AWS API error in {service}.{operation}: {error_code} - {error_message}",
                extra={
                    'context': {
                        'service': service,
                        'operation': operation,
                        'error_code': error_code,
                        'request_id': error.response.get('ResponseMetadata', {}).get('RequestId')
                    }
                }
            )

            if error_code in ['AccessDenied', 'AccessDeniedException', 'UnauthorizedOperation']:
                raise AWSCredentialsError(
                    f"Access denied for {service}.{operation}: {error_message}",
                    error_code=error_code,
                    context={'service': service, 'operation': operation}
                ) from error
            if service == 's3':
                raise S3Error(
                    f"S3 error: {error_message}",
                    error_code=error_code,
                    context={'operation': operation}
                ) from error
            raise QuickSightAPIError(
                f"QuickSight API error: {error_message}",
                error_code=error_code,
                context={'operation': operation}
            ) from error

        if isinstance(error, NoCredentialsError):
            self.logger.error("AWS credentials not found or invalid")
            raise AWSCredentialsError("AWS credentials not found or invalid") from error

        if isinstance(error, BotoCoreError):
            self.logger.error(f"Boto3 error in {service}.{operation}: {str(error)}")
            raise QuickSightAPIError(
                f"Boto3 error in {service}.{operation}: {str(error)}",
                context={'operation': operation}
            ) from error

        raise error

    def get_error_remediation_steps(self, error: Exception) -> List[str]:
        """
        Get suggested remediation steps for common errors.

        Args:
            error: The exception that occurred

        Returns:
            List[str]: List of suggested remediation steps
        """
        if isinstance(error, AWSCredentialsError):
            return [
                "Check that AWS credentials are properly configured",
                "Verify AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY environment variables",
                "Check IAM role permissions for QuickSight and S3",
                "Verify the AWS region is correctly specified"
            ]

        if isinstance(error, QuickSightAPIError):
            if error.error_code == 'ResourceNotFoundException':
                return [
                    "Check that the QuickSight resources still exist",
                    "Verify the AWS account ID, region and namespace"
                ]
            return [
                "Verify QuickSight is enabled in the specified region",
                "Check that the caller has QuickSight admin privileges"
            ]

        if isinstance(error, S3Error):
            if error.error_code == 'NoSuchBucket':
                return [
                    "Create the S3 bucket before running the export",
                    "Verify the bucket name and region"
                ]
            return [
                "Check S3 permissions (s3:GetObject, s3:PutObject, s3:DeleteObject, s3:ListBucket)",
                "Verify the bucket policy allows the required operations"
            ]

        if isinstance(error, ConfigurationError):
            return [
                "Review the configuration file for syntax errors",
                "Check that the AWS account ID is a 12-digit number",
                "Run with --create-sample-config to see every supported setting"
            ]

        if isinstance(error, RetryExhaustedError):
            return [
                "Lower max_concurrency or the rate limits in the configuration",
                "Re-run the export; unchanged assets are skipped automatically"
            ]

        return [
            "Check the error logs for more detailed information",
            "Verify AWS credentials and permissions",
            "Check network connectivity to AWS services"
        ]
