"""
Data models for QuickSight export operations.
"""

from .config import ExportConfig
from .asset import (
    AssetType,
    AssetStatus,
    EnrichmentStatus,
    StorageType,
    StatusFilter,
    CacheEntry,
    MasterCache,
    ALL_ASSET_TYPES,
    parse_timestamp,
)
from .processing import RefreshOptions, ProcessingContext, ExportOptions
from .export_result import (
    ProcessingStatus,
    ProcessingResult,
    JobStatus,
    ExportError,
    BatchProcessingResult,
    TimingBreakdown,
    AssetTypeSummary,
    ExportSummary,
)
from .exceptions import (
    QuickSightExportError,
    ConfigurationError,
    AWSCredentialsError,
    QuickSightAPIError,
    S3Error,
    CacheError,
    ArchiveError,
    ExportJobError,
    RetryExhaustedError,
)

__all__ = [
    "ExportConfig",
    "AssetType",
    "AssetStatus",
    "EnrichmentStatus",
    "StorageType",
    "StatusFilter",
    "CacheEntry",
    "MasterCache",
    "ALL_ASSET_TYPES",
    "parse_timestamp",
    "RefreshOptions",
    "ProcessingContext",
    "ExportOptions",
    "ProcessingStatus",
    "ProcessingResult",
    "JobStatus",
    "ExportError",
    "BatchProcessingResult",
    "TimingBreakdown",
    "AssetTypeSummary",
    "ExportSummary",
    "QuickSightExportError",
    "ConfigurationError",
    "AWSCredentialsError",
    "QuickSightAPIError",
    "S3Error",
    "CacheError",
    "ArchiveError",
    "ExportJobError",
    "RetryExhaustedError",
]
