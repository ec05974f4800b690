"""
Per-run options and the context handed to every asset processor.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any

from .asset import AssetType, ALL_ASSET_TYPES


@dataclass(frozen=True)
class RefreshOptions:
    """Which enrichment components to fetch for each asset."""

    definitions: bool = True
    permissions: bool = True
    tags: bool = True

    @property
    def is_metadata_only(self) -> bool:
        """Permissions and/or tags requested without definitions."""
        return not self.definitions and (self.permissions or self.tags)

    def to_dict(self) -> Dict[str, bool]:
        return {
            'definitions': self.definitions,
            'permissions': self.permissions,
            'tags': self.tags,
        }


@dataclass
class ProcessingContext:
    """
    Ephemeral configuration shared by every processor during one export run.

    bulk_permissions and bulk_tags are keyed by asset ID and, when present,
    replace the per-asset API calls.
    """

    force_refresh: bool = False
    refresh_options: RefreshOptions = field(default_factory=RefreshOptions)
    bulk_permissions: Optional[Dict[str, List[Dict[str, Any]]]] = None
    bulk_tags: Optional[Dict[str, Dict[str, str]]] = None
    job_id: Optional[str] = None


@dataclass
class ExportOptions:
    """Options accepted by ExportOrchestrator.export_assets."""

    force_refresh: bool = False
    refresh_options: RefreshOptions = field(default_factory=RefreshOptions)
    asset_types: List[AssetType] = field(default_factory=lambda: list(ALL_ASSET_TYPES))
    batch_size: int = 25
    max_concurrency: int = 10
    rebuild_index: bool = False
