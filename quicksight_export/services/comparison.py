"""
Change detection between a fresh QuickSight listing and the persisted cache.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from quicksight_export.models.asset import (
    AssetType, CacheEntry, StatusFilter, summary_asset_id, summary_asset_name,
    summary_last_modified, summary_value, parse_timestamp
)
from quicksight_export.services.cache_store import CacheStore
from quicksight_export.services.job_state import JobStateService

logger = logging.getLogger(__name__)

ARCHIVE_PATH_MARKER = 'archived/'


@dataclass
class PreparedAsset:
    """A listed asset reduced to the fields used for comparison."""

    id: str
    name: str
    arn: str
    last_modified: Optional[datetime]
    created: Optional[datetime]
    original_summary: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ComparisonResult:
    needs_update: Set[str] = field(default_factory=set)
    unchanged: Set[str] = field(default_factory=set)
    deleted_asset_ids: Set[str] = field(default_factory=set)


def prepare_assets_for_comparison(asset_type: AssetType,
                                  summaries: Iterable[Dict[str, Any]]) -> List[PreparedAsset]:
    """Map list summaries to PreparedAsset, dropping summaries without an ID."""
    prepared = []
    for summary in summaries:
        asset_id = summary_asset_id(asset_type, summary)
        if not asset_id:
            logger.warning(f"Skipping {asset_type.value} summary without an ID")
            continue
        prepared.append(PreparedAsset(
            id=asset_id,
            name=summary_asset_name(asset_type, summary),
            arn=summary_value(summary, 'Arn') or '',
            last_modified=summary_last_modified(summary),
            created=parse_timestamp(summary_value(summary, 'CreatedTime')),
            original_summary=summary,
        ))
    return prepared


def deduplicate_entries(entries: Iterable[CacheEntry]) -> Dict[str, CacheEntry]:
    """
    Keep one entry per asset ID: the latest lastUpdatedTime wins, archived wins a tie.
    Entries without a timestamp lose to any entry that has one.
    """
    result: Dict[str, CacheEntry] = {}
    for entry in entries:
        current = result.get(entry.asset_id)
        if current is None:
            result[entry.asset_id] = entry
            continue

        new_time = entry.last_updated_time
        old_time = current.last_updated_time
        if new_time is not None and (old_time is None or new_time > old_time):
            result[entry.asset_id] = entry
        elif new_time == old_time and entry.is_archived and not current.is_archived:
            result[entry.asset_id] = entry
    return result


class AssetComparisonEngine:
    """Classifies listed assets as needing update, unchanged, or deleted."""

    def __init__(self, cache_store: CacheStore,
                 job_state: Optional[JobStateService] = None,
                 job_id: Optional[str] = None):
        self.cache_store = cache_store
        self.job_state = job_state
        self.job_id = job_id

    def _log_job(self, message: str, details: Dict[str, Any]) -> None:
        if self.job_state and self.job_id:
            self.job_state.log_info(self.job_id, message, details)

    def compare_and_detect_changes(self,
                                   asset_type: AssetType,
                                   listed_assets: List[PreparedAsset],
                                   soft_deleted_assets: Optional[List[Dict[str, Any]]] = None,
                                   force_refresh: bool = False) -> ComparisonResult:
        """
        Diff the listing against the cache.

        Deletion detection reads the cache independently of the update
        classification; a failure there yields no deletions. Returned sets are
        pairwise disjoint: a deleted ID is never also reported as needing update.
        """
        self._log_job("Comparing with existing cache to detect deleted assets",
                      {'assetType': asset_type.value})
        deleted = self.detect_deleted_assets(asset_type, listed_assets, soft_deleted_assets or [])

        self._log_job(f"Comparing {len(listed_assets)} assets with cache", {'assetType': asset_type.value})
        result = self.compare_with_cache(asset_type, listed_assets, force_refresh)

        result.deleted_asset_ids = deleted
        result.needs_update -= deleted
        result.unchanged -= deleted

        logger.info(
            f"Comparison for {asset_type.value}: {len(result.needs_update)} need update, "
            f"{len(result.unchanged)} unchanged, {len(deleted)} deleted",
            extra={'context': {'asset_type': asset_type.value, 'force_refresh': force_refresh}}
        )
        return result

    def compare_with_cache(self, asset_type: AssetType, assets: List[PreparedAsset],
                           force_refresh: bool = False) -> ComparisonResult:
        result = ComparisonResult()

        if force_refresh:
            result.needs_update = {a.id for a in assets}
            return result

        try:
            cached = deduplicate_entries(self.cache_store.get_type_cache(asset_type) or [])
        except Exception as e:
            logger.warning(f"Could not read {asset_type.value} cache, treating every asset as new: {e}")
            cached = {}

        if not cached:
            logger.info(f"No cache found for {asset_type.value} - all {len(assets)} assets need export")
            result.needs_update = {a.id for a in assets}
            return result

        for asset in assets:
            if self._needs_update(asset_type, asset, cached.get(asset.id)):
                result.needs_update.add(asset.id)
            else:
                result.unchanged.add(asset.id)

        return result

    def _needs_update(self, asset_type: AssetType, asset: PreparedAsset,
                      cached: Optional[CacheEntry]) -> bool:
        if cached is None or not cached.is_active:
            return True

        # No timestamp changes when members or permissions change on these kinds
        if not asset_type.has_reliable_timestamp:
            return True

        remote_time = asset.last_modified
        cached_time = cached.last_updated_time
        if remote_time is None and cached_time is None:
            return False
        if remote_time is None or cached_time is None:
            return True
        return remote_time > cached_time

    def detect_deleted_assets(self, asset_type: AssetType, listed_assets: List[PreparedAsset],
                              soft_deleted_assets: List[Dict[str, Any]]) -> Set[str]:
        """IDs to archive: cached as active but no longer listed, plus inconsistent archives."""
        try:
            master = self.cache_store.get_master_cache(StatusFilter.ALL, asset_type)
            cached = deduplicate_entries(master.entries_for(asset_type))
            listed_ids = {a.id for a in listed_assets}
            deleted: Set[str] = set()

            for asset_id, entry in cached.items():
                if asset_id in listed_ids:
                    continue
                if entry.is_active:
                    deleted.add(asset_id)
                elif (entry.is_archived and entry.export_file_path
                      and ARCHIVE_PATH_MARKER not in entry.export_file_path):
                    logger.warning(
                        f"{asset_type.value} {asset_id} is archived in cache but its document is at "
                        f"{entry.export_file_path}; archiving again"
                    )
                    deleted.add(asset_id)

            if asset_type == AssetType.ANALYSIS:
                for summary in soft_deleted_assets:
                    asset_id = summary_asset_id(asset_type, summary)
                    if not asset_id:
                        continue
                    entry = cached.get(asset_id)
                    if entry is not None and entry.is_archived:
                        continue
                    deleted.add(asset_id)

            if deleted:
                logger.info(f"Detected {len(deleted)} deleted {asset_type.plural}")
            return deleted

        except Exception as e:
            logger.error(f"Failed to detect deleted {asset_type.plural}, assuming none: {e}", exc_info=True)
            return set()
