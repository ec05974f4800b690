"""
QuickSight Export Tool

Incremental export of Amazon QuickSight asset metadata into an S3 cache.
"""

from .config import ConfigurationManager
from .orchestrator import ExportOrchestrator
from .models import (
    ExportConfig,
    ExportOptions,
    ExportSummary,
    AssetTypeSummary,
    AssetType,
    RefreshOptions,
    QuickSightExportError,
    ConfigurationError,
    AWSCredentialsError,
    QuickSightAPIError,
    S3Error,
    CacheError,
    ExportJobError
)

__version__ = "1.0.0"
__author__ = "QuickSight Export Tool"

__all__ = [
    "ConfigurationManager",
    "ExportOrchestrator",
    "ExportConfig",
    "ExportOptions",
    "ExportSummary",
    "AssetTypeSummary",
    "AssetType",
    "RefreshOptions",
    "QuickSightExportError",
    "ConfigurationError",
    "AWSCredentialsError",
    "QuickSightAPIError",
    "S3Error",
    "CacheError",
    "ExportJobError"
]
