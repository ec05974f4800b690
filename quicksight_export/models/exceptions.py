"""
Custom exception classes for QuickSight export operations.
"""

from typing import Optional, Dict, Any


class QuickSightExportError(Exception):
    """Base exception for QuickSight export operations."""
    
    def __init__(self, message: str, error_code: Optional[str] = None, 
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}


class ConfigurationError(QuickSightExportError):
    """Exception raised for configuration-related errors."""
    pass


class AWSCredentialsError(QuickSightExportError):
    """Exception raised for AWS credentials-related errors."""
    pass


class QuickSightAPIError(QuickSightExportError):
    """Exception raised for QuickSight API-related errors."""
    pass


class S3Error(QuickSightExportError):
    """Exception raised for S3-related errors."""
    pass


class CacheError(QuickSightExportError):
    """Exception raised when the asset cache cannot be read or written."""
    pass


class ArchiveError(QuickSightExportError):
    """Exception raised when an asset cannot be moved to the archive."""
    pass


class ExportJobError(QuickSightExportError):
    """Exception raised for export job execution errors."""
    pass


class RetryExhaustedError(QuickSightExportError):
    """Raised when a retryable operation keeps failing after every allowed attempt."""
    
    def __init__(self, message: str, attempts: int, last_error: Optional[Exception] = None,
                 error_code: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code=error_code, context=context)
        self.attempts = attempts
        self.last_error = last_error
