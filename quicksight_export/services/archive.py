"""
Moves deleted assets from the active to the archived area of the bucket.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from quicksight_export.models.asset import AssetStatus, AssetType, utc_now
from quicksight_export.models.exceptions import ArchiveError, QuickSightExportError
from quicksight_export.services.cache_store import (
    CacheStore, asset_document_key, collection_document_key
)

logger = logging.getLogger(__name__)


@dataclass
class ArchiveRequest:
    asset_type: AssetType
    asset_id: str
    archive_reason: Optional[str] = None
    archived_by: Optional[str] = None


@dataclass
class ArchiveResult:
    asset_id: str
    asset_type: AssetType
    success: bool
    original_path: str
    archive_path: str
    archived_at: str
    error: Optional[str] = None


class ArchiveService:
    """Archives export documents and flags their cache entries as archived."""

    def __init__(self, cache_store: CacheStore):
        self.cache_store = cache_store
        self.bucket = cache_store.bucket

    def archive_assets_bulk(self, requests: List[ArchiveRequest]) -> List[ArchiveResult]:
        """Archive each requested asset in turn. Failures are reported, never raised."""
        return [self.archive_asset(r.asset_type, r.asset_id, r.archive_reason, r.archived_by)
                for r in requests]

    def archive_asset(self, asset_type: AssetType, asset_id: str,
                      archive_reason: Optional[str] = None,
                      archived_by: Optional[str] = None) -> ArchiveResult:
        if asset_type.is_collection:
            result = self._archive_collection_item(asset_type, asset_id, archive_reason, archived_by)
        else:
            result = self._archive_individual_asset(asset_type, asset_id, archive_reason, archived_by)

        if result.success:
            self._update_cache_after_archive(asset_type, asset_id, result.archive_path,
                                             archive_reason, archived_by)
        return result

    def _archived_metadata(self, original_path: str, archive_reason: Optional[str],
                           archived_by: Optional[str]) -> Dict[str, Any]:
        return {
            'archivedAt': utc_now().isoformat(),
            'archiveReason': archive_reason,
            'archivedBy': archived_by,
            'originalPath': original_path,
        }

    def _archive_individual_asset(self, asset_type: AssetType, asset_id: str,
                                  archive_reason: Optional[str],
                                  archived_by: Optional[str]) -> ArchiveResult:
        original_path = asset_document_key(asset_type, asset_id)
        archive_path = asset_document_key(asset_type, asset_id, archived=True)

        try:
            document = self.cache_store.get_object(self.bucket, original_path)
            if document is None:
                if self.cache_store.object_exists(self.bucket, archive_path):
                    logger.info(f"Asset {asset_type.value}/{asset_id} is already archived at {archive_path}")
                    return ArchiveResult(asset_id, asset_type, True, original_path, archive_path,
                                         utc_now().isoformat())
                raise ArchiveError(f"Cannot archive asset that doesn't exist: {original_path}")

            # Keep the first archive record if the document was archived before
            if not document.get('archivedMetadata'):
                document['archivedMetadata'] = self._archived_metadata(original_path, archive_reason, archived_by)

            self.cache_store.put_object(self.bucket, archive_path, document)
            if not self.cache_store.object_exists(self.bucket, archive_path):
                raise ArchiveError(f"Failed to verify archive creation at {archive_path}")
            self.cache_store.delete_object(self.bucket, original_path)

            logger.info(
                f"Archived {asset_type.value} {asset_id}",
                extra={'context': {'original_path': original_path, 'archive_path': archive_path,
                                   'archive_reason': archive_reason}}
            )
            return ArchiveResult(asset_id, asset_type, True, original_path, archive_path,
                                 document['archivedMetadata']['archivedAt'])

        except QuickSightExportError as e:
            logger.error(f"Failed to archive {asset_type.value} {asset_id}: {e.message}")
            return ArchiveResult(asset_id, asset_type, False, original_path, archive_path,
                                 utc_now().isoformat(), error=e.message)

    def _archive_collection_item(self, asset_type: AssetType, item_id: str,
                                 archive_reason: Optional[str],
                                 archived_by: Optional[str]) -> ArchiveResult:
        collection_path = collection_document_key(asset_type)
        archive_path = collection_document_key(asset_type, archived=True)
        original_ref = f"{collection_path}#{item_id}"

        try:
            active = self.cache_store.get_collection_document(asset_type)
            archived = self.cache_store.get_collection_document(asset_type, archived=True)

            if item_id not in active:
                if item_id in archived:
                    return ArchiveResult(item_id, asset_type, True, original_ref,
                                         f"{archive_path}#{item_id}", utc_now().isoformat())
                raise ArchiveError(f"Item {item_id} not found in {asset_type.value} collection")

            item = dict(active.pop(item_id))
            item['archivedMetadata'] = self._archived_metadata(original_ref, archive_reason, archived_by)
            archived[item_id] = item

            # Archive first so a failed second write never loses the item
            self.cache_store.put_collection_document(asset_type, archived, archived=True)
            self.cache_store.put_collection_document(asset_type, active)

            logger.info(f"Archived {asset_type.value} item {item_id}")
            return ArchiveResult(item_id, asset_type, True, original_ref, f"{archive_path}#{item_id}",
                                 item['archivedMetadata']['archivedAt'])

        except QuickSightExportError as e:
            logger.error(f"Failed to archive {asset_type.value} item {item_id}: {e.message}")
            return ArchiveResult(item_id, asset_type, False, original_ref, original_ref,
                                 utc_now().isoformat(), error=e.message)

    def _update_cache_after_archive(self, asset_type: AssetType, asset_id: str, archive_path: str,
                                    archive_reason: Optional[str], archived_by: Optional[str]) -> None:
        try:
            self.cache_store.update_cache_entry(
                asset_type, asset_id,
                status=AssetStatus.ARCHIVED,
                export_file_path=archive_path.split('#', 1)[0],
                last_updated_time=utc_now(),
            )
        except QuickSightExportError as e:
            # The document move already succeeded; the next cache rebuild repairs the entry
            logger.error(f"Failed to update cache after archiving {asset_type.value}/{asset_id}: {e.message}")
