"""
Service classes for QuickSight export operations.
"""

from .base import BaseAWSService
from .rate_limiter import TokenBucketRateLimiter, create_rate_limiters
from .error_handler import ErrorHandler, RetryPolicy, with_retry
from .logging import LoggingService
from .quicksight_gateway import QuickSightGateway, ListResult
from .cache_store import CacheStore
from .archive import ArchiveService, ArchiveRequest, ArchiveResult
from .job_state import JobStateService
from .lineage import LineageService
from .comparison import AssetComparisonEngine, ComparisonResult, PreparedAsset

__all__ = [
    "BaseAWSService",
    "TokenBucketRateLimiter",
    "create_rate_limiters",
    "ErrorHandler",
    "RetryPolicy",
    "with_retry",
    "LoggingService",
    "QuickSightGateway",
    "ListResult",
    "CacheStore",
    "ArchiveService",
    "ArchiveRequest",
    "ArchiveResult",
    "JobStateService",
    "LineageService",
    "AssetComparisonEngine",
    "ComparisonResult",
    "PreparedAsset"
]
