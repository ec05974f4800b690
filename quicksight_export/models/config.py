"""
Configuration data models for QuickSight export operations.
"""

from dataclasses import dataclass
from typing import Optional, List
import re
import boto3
from botocore.exceptions import ClientError, NoCredentialsError


@dataclass
class ExportConfig:
    """Configuration settings for QuickSight export operations."""

    # No default values
    s3_bucket_name: str

    # AWS Configuration
    aws_region: str
    aws_account_id: str
    identity_region: Optional[str] = None  # Optional separate region for user/group operations
    namespace: str = "default"

    # Export Options
    batch_size: int = 25
    max_concurrency: int = 10
    collection_flush_concurrency: int = 3
    progress_log_interval: int = 5
    max_summary_errors: int = 100

    # Rate limits (burst size, tokens per second)
    general_max_tokens: float = 10.0
    general_refill_rate: float = 10.0
    permissions_max_tokens: float = 2.0
    permissions_refill_rate: float = 2.0

    # Retry policy for transient errors
    retry_max_retries: int = 5
    retry_base_delay_ms: int = 500
    retry_max_delay_ms: int = 10000
    retry_jitter_factor: float = 0.3

    # Job records
    max_job_log_entries: int = 1000

    # Logging Configuration
    logging_level: str = "INFO"
    logging_file_path: str = "./logs/export.log"

    # Optional AWS Credentials
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_session_token: Optional[str] = None

    def validate(self) -> List[str]:
        """
        Validate configuration settings and return list of validation errors.

        Returns:
            List[str]: List of validation error messages. Empty if valid.
        """
        errors = []

        errors.extend(self._validate_aws_settings())
        errors.extend(self._validate_s3_settings())
        errors.extend(self._validate_export_options())
        errors.extend(self._validate_rate_limits())
        errors.extend(self._validate_retry_settings())
        errors.extend(self._validate_logging_settings())

        return errors

    def _validate_aws_settings(self) -> List[str]:
        """Validate AWS configuration settings."""
        errors = []

        if not self.aws_region:
            errors.append("AWS region is required")
        elif not re.match(r'^[a-z0-9-]+$', self.aws_region):
            errors.append("AWS region format is invalid")

        if self.identity_region and not re.match(r'^[a-z0-9-]+$', self.identity_region):
            errors.append("Identity region format is invalid")

        if not self.aws_account_id:
            errors.append("AWS account ID is required")
        elif not re.match(r'^\d{12}$', str(self.aws_account_id)):
            errors.append("AWS account ID must be a 12-digit number")

        if not self.namespace:
            errors.append("QuickSight namespace is required")

        return errors

    def _validate_s3_settings(self) -> List[str]:
        """Validate S3 configuration settings."""
        errors = []

        if not self.s3_bucket_name:
            errors.append("S3 bucket name is required")
        elif not self._is_valid_s3_bucket_name(self.s3_bucket_name):
            errors.append("S3 bucket name is invalid")

        return errors

    def _validate_export_options(self) -> List[str]:
        """Validate batch and concurrency settings."""
        errors = []

        if not isinstance(self.batch_size, int) or not (1 <= self.batch_size <= 100):
            errors.append("batch_size must be an integer between 1 and 100 inclusive")

        if not isinstance(self.max_concurrency, int) or not (1 <= self.max_concurrency <= 50):
            errors.append("max_concurrency must be an integer between 1 and 50 inclusive")

        if not isinstance(self.collection_flush_concurrency, int) or self.collection_flush_concurrency < 1:
            errors.append("collection_flush_concurrency must be a positive integer")

        if not isinstance(self.progress_log_interval, int) or self.progress_log_interval < 1:
            errors.append("progress_log_interval must be a positive integer")

        if not isinstance(self.max_summary_errors, int) or self.max_summary_errors < 1:
            errors.append("max_summary_errors must be a positive integer")

        if not isinstance(self.max_job_log_entries, int) or self.max_job_log_entries < 1:
            errors.append("max_job_log_entries must be a positive integer")

        return errors

    def _validate_rate_limits(self) -> List[str]:
        """Validate token bucket settings."""
        errors = []

        for name in ('general_max_tokens', 'general_refill_rate',
                     'permissions_max_tokens', 'permissions_refill_rate'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value <= 0:
                errors.append(f"{name} must be a positive number")

        return errors

    def _validate_retry_settings(self) -> List[str]:
        """Validate retry policy settings."""
        errors = []

        if not isinstance(self.retry_max_retries, int) or self.retry_max_retries < 0:
            errors.append("retry max_retries must be a non-negative integer")

        if not isinstance(self.retry_base_delay_ms, int) or self.retry_base_delay_ms < 0:
            errors.append("retry base_delay_ms must be a non-negative integer")

        if not isinstance(self.retry_max_delay_ms, int) or self.retry_max_delay_ms < self.retry_base_delay_ms:
            errors.append("retry max_delay_ms must be an integer not smaller than base_delay_ms")

        if not isinstance(self.retry_jitter_factor, (int, float)) or not (0 <= self.retry_jitter_factor <= 1):
            errors.append("retry jitter_factor must be between 0 and 1")

        return errors

    def _validate_logging_settings(self) -> List[str]:
        """Validate logging configuration settings."""
        errors = []

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.logging_level not in valid_levels:
            errors.append(f"Logging level must be one of: {', '.join(valid_levels)}")

        if not self.logging_file_path:
            errors.append("Logging file path is required")

        return errors

    def _is_valid_s3_bucket_name(self, bucket_name: str) -> bool:
        """
        Validate S3 bucket name according to AWS naming rules.

        Args:
            bucket_name: The bucket name to validate

        Returns:
            bool: True if valid, False otherwise
        """
        if len(bucket_name) < 3 or len(bucket_name) > 63:
            return False

        if not re.match(r'^[a-z0-9][a-z0-9.-]*[a-z0-9]$', bucket_name):
            return False

        if '..' in bucket_name or '.-' in bucket_name or '-.' in bucket_name:
            return False

        # Cannot be formatted as an IP address
        if re.match(r'^\d+\.\d+\.\d+\.\d+$', bucket_name):
            return False

        return True

    def session_kwargs(self, region: Optional[str] = None) -> dict:
        """Keyword arguments for boto3.Session using explicit credentials when provided."""
        kwargs = {'region_name': region or self.aws_region}
        if self.aws_access_key_id and self.aws_secret_access_key:
            kwargs.update({
                'aws_access_key_id': self.aws_access_key_id,
                'aws_secret_access_key': self.aws_secret_access_key
            })
            if self.aws_session_token:
                kwargs['aws_session_token'] = self.aws_session_token
        return kwargs

    def validate_aws_connectivity(self) -> List[str]:
        """
        Validate AWS connectivity and permissions.

        Returns:
            List[str]: List of connectivity/permission error messages. Empty if valid.
        """
        errors = []

        try:
            session = boto3.Session(**self.session_kwargs())

            try:
                quicksight = session.client('quicksight')
                quicksight.list_dashboards(AwsAccountId=self.aws_account_id, MaxResults=1)
            except ClientError as e:
                error_code = e.response['Error']['Code']
                if error_code == 'AccessDeniedException':
                    errors.append("Insufficient permissions for QuickSight operations")
                elif error_code == 'InvalidParameterValueException':
                    errors.append("Invalid AWS account ID for QuickSight")
                else:
                    errors.append(f"QuickSight access error: {error_code}")
            except Exception as e:
                errors.append(f"QuickSight connectivity error: {str(e)}")

            try:
                s3 = session.client('s3')
                s3.head_bucket(Bucket=self.s3_bucket_name)
            except ClientError as e:
                error_code = e.response['Error']['Code']
                if error_code in ('NoSuchBucket', '404'):
                    errors.append(f"S3 bucket '{self.s3_bucket_name}' does not exist")
                elif error_code in ('AccessDenied', '403'):
                    errors.append(f"Insufficient permissions for S3 bucket '{self.s3_bucket_name}'")
                else:
                    errors.append(f"S3 access error: {error_code}")
            except Exception as e:
                errors.append(f"S3 connectivity error: {str(e)}")

        except NoCredentialsError:
            errors.append("AWS credentials not found. Please configure credentials.")
        except Exception as e:
            errors.append(f"AWS session creation error: {str(e)}")

        return errors
