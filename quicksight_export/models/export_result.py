"""
Data models for export results and summaries.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any

from .asset import utc_now


class ProcessingStatus(Enum):
    """Outcome of processing a single asset."""
    SUCCESS = "success"
    ERROR = "error"
    CACHED = "cached"


class JobStatus(Enum):
    """Lifecycle states of an export job record."""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass
class ProcessingResult:
    """Result returned by an asset processor; never replaced by an exception."""

    asset_id: str
    asset_name: str
    asset_type: str
    status: ProcessingStatus
    error: Optional[str] = None
    timing: Dict[str, float] = field(default_factory=dict)
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == ProcessingStatus.SUCCESS


@dataclass
class ExportError:
    """A single per-asset failure recorded during an export."""

    asset_id: str
    error: str
    asset_name: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)
    batch_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'assetId': self.asset_id,
            'error': self.error,
            'timestamp': self.timestamp.isoformat(),
        }
        if self.asset_name is not None:
            data['assetName'] = self.asset_name
        if self.batch_index is not None:
            data['batchIndex'] = self.batch_index
        return data


@dataclass
class BatchProcessingResult:
    """Aggregate outcome of BatchProcessor.process_in_batches."""

    results: List[ProcessingResult] = field(default_factory=list)
    errors: List[ExportError] = field(default_factory=list)
    stopped: bool = False

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.status == ProcessingStatus.SUCCESS)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == ProcessingStatus.ERROR)


@dataclass(frozen=True)
class TimingBreakdown:
    listing_ms: float = 0.0
    comparison_ms: float = 0.0
    processing_ms: float = 0.0
    total_ms: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            'listing': round(self.listing_ms, 2),
            'comparison': round(self.comparison_ms, 2),
            'processing': round(self.processing_ms, 2),
            'total': round(self.total_ms, 2),
        }


@dataclass(frozen=True)
class AssetTypeSummary:
    """Statistics for one asset type in one export run. Immutable once built."""

    asset_type: str
    total_listed: int = 0
    total_processed: int = 0
    successful: int = 0
    cached: int = 0
    failed: int = 0
    archived: int = 0
    api_calls: int = 0
    stopped: bool = False
    timing: TimingBreakdown = field(default_factory=TimingBreakdown)
    errors: tuple = ()

    @classmethod
    def failure(cls, asset_type: str, error: str, duration_ms: float = 0.0) -> "AssetTypeSummary":
        """Summary for an asset type whose export raised before producing results."""
        return cls(
            asset_type=asset_type,
            failed=1,
            timing=TimingBreakdown(total_ms=duration_ms),
            errors=(ExportError(asset_id='N/A', error=error),),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'assetType': self.asset_type,
            'totalListed': self.total_listed,
            'totalProcessed': self.total_processed,
            'successful': self.successful,
            'cached': self.cached,
            'failed': self.failed,
            'archived': self.archived,
            'apiCalls': self.api_calls,
            'stopped': self.stopped,
            'timing': self.timing.to_dict(),
            'errors': [e.to_dict() for e in self.errors],
        }


@dataclass
class ExportSummary:
    """Run-level statistics aggregated across asset types."""

    start_time: datetime
    end_time: Optional[datetime] = None
    summaries: List[AssetTypeSummary] = field(default_factory=list)
    stopped: bool = False

    @property
    def total_listed(self) -> int:
        return sum(s.total_listed for s in self.summaries)

    @property
    def total_processed(self) -> int:
        return sum(s.total_processed for s in self.summaries)

    @property
    def successful(self) -> int:
        return sum(s.successful for s in self.summaries)

    @property
    def cached(self) -> int:
        return sum(s.cached for s in self.summaries)

    @property
    def failed(self) -> int:
        return sum(s.failed for s in self.summaries)

    @property
    def api_calls(self) -> int:
        return sum(s.api_calls for s in self.summaries)

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds() * 1000

    @property
    def success_rate(self) -> float:
        """Percentage of processed assets that succeeded."""
        if self.total_processed == 0:
            return 0.0
        return (self.successful / self.total_processed) * 100

    def summary_for(self, asset_type: str) -> Optional[AssetTypeSummary]:
        for summary in self.summaries:
            if summary.asset_type == asset_type:
                return summary
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'startTime': self.start_time.isoformat(),
            'endTime': self.end_time.isoformat() if self.end_time else None,
            'duration': round(self.duration_ms, 2),
            'totals': {
                'listed': self.total_listed,
                'processed': self.total_processed,
                'successful': self.successful,
                'cached': self.cached,
                'failed': self.failed,
                'apiCalls': self.api_calls,
            },
            'stopped': self.stopped,
            'assetTypes': [s.to_dict() for s in self.summaries],
        }
