"""
Export orchestrator for QuickSight asset exports.
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from quicksight_export.models.asset import AssetType, summary_value, utc_now
from quicksight_export.models.config import ExportConfig
from quicksight_export.models.exceptions import QuickSightExportError, RetryExhaustedError
from quicksight_export.models.export_result import (
    AssetTypeSummary, ExportSummary, JobStatus, ProcessingResult, TimingBreakdown
)
from quicksight_export.models.processing import ExportOptions, ProcessingContext
from quicksight_export.processors import CollectionBatchRegistry, create_processor
from quicksight_export.services.archive import ArchiveRequest, ArchiveService
from quicksight_export.services.batch_processing import BatchCallbacks, BatchProcessor
from quicksight_export.services.cache_store import CacheStore
from quicksight_export.services.comparison import (
    AssetComparisonEngine, PreparedAsset, prepare_assets_for_comparison
)
from quicksight_export.services.error_handler import ErrorHandler
from quicksight_export.services.job_state import JobStateService
from quicksight_export.services.lineage import LineageService
from quicksight_export.services.quicksight_gateway import QuickSightGateway
from quicksight_export.services.rate_limiter import create_rate_limiters

logger = logging.getLogger(__name__)

DELETED_STATUS = 'DELETED'
ARCHIVE_REASON = 'Asset deleted from QuickSight (detected during export)'


def generate_job_id() -> str:
    return f"export-{utc_now().strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:8]}"


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


class ExportOrchestrator:
    """Coordinates listing, change detection, archiving and enrichment for each asset type."""

    def __init__(self,
                 config: ExportConfig,
                 gateway: Optional[QuickSightGateway] = None,
                 cache_store: Optional[CacheStore] = None,
                 job_state: Optional[JobStateService] = None):
        """
        Initialize the export orchestrator.

        Args:
            config: Export configuration
            gateway: QuickSight gateway; built from config when omitted
            cache_store: S3 cache store; built from config when omitted
            job_state: Job record service; built on cache_store when omitted
        """
        self.config = config
        if gateway is None:
            general, permissions = create_rate_limiters(config)
            gateway = QuickSightGateway(config, general, permissions)
        self.gateway = gateway
        self.cache_store = cache_store or CacheStore(config)
        self.job_state = job_state or JobStateService(self.cache_store, config.max_job_log_entries)
        self.archive_service = ArchiveService(self.cache_store)
        self.lineage_service = LineageService(self.cache_store)
        self.error_handler = ErrorHandler(logger)
        self.job_id: Optional[str] = None

    # ------------------------------------------------------------------
    # Job helpers
    # ------------------------------------------------------------------

    def _log_info(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        if self.job_id:
            self.job_state.log_info(self.job_id, message, details)
        else:
            logger.info(message, extra={'context': details or {}})

    def _log_warn(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        if self.job_id:
            self.job_state.log_warn(self.job_id, message, details)
        else:
            logger.warning(message, extra={'context': details or {}})

    def _log_error(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        if self.job_id:
            self.job_state.log_error(self.job_id, message, details)
        else:
            logger.error(message, extra={'context': details or {}})

    def _update_job(self, updates: Dict[str, Any]) -> None:
        if self.job_id:
            self.job_state.update_job_status(self.job_id, updates)

    def _stop_requested(self) -> bool:
        return bool(self.job_id) and self.job_state.is_stop_requested(self.job_id)

    # ------------------------------------------------------------------
    # Top level
    # ------------------------------------------------------------------

    def export_assets(self, options: Optional[ExportOptions] = None,
                      job_id: Optional[str] = None) -> ExportSummary:
        """
        Export every requested asset type in order, then rebuild derived caches.

        A failing asset type is recorded as a failed summary and the run
        continues. Rebuild-only runs (rebuild_index with no asset types)
        regenerate the caches from the export documents already in S3.
        """
        options = options or ExportOptions()
        self.job_id = job_id or generate_job_id()
        summary = ExportSummary(start_time=utc_now())

        if self.job_state.get_job_status(self.job_id) is None:
            self.job_state.create_job(self.job_id, initial={'options': self._options_dict(options)})
        self._update_job({'status': JobStatus.PROCESSING, 'message': 'Export started'})
        self._log_info(f"Export started (bucket: {self.cache_store.bucket})",
                       {'options': self._options_dict(options)})

        rebuild_only = options.rebuild_index and not options.asset_types
        if rebuild_only:
            self._log_info("Cache rebuild requested - rebuilding from existing export documents")
        elif options.rebuild_index:
            self._clear_caches_for_rebuild()
        elif options.force_refresh:
            self._log_info("Force refresh requested - every listed asset will be re-exported")

        for asset_type in options.asset_types:
            if self._stop_requested():
                self._log_warn(f"Export stopped by user request before {asset_type.value}")
                summary.stopped = True
                break

            try:
                type_summary = self.export_asset_type(asset_type, options)
            except Exception as e:
                logger.error(f"Failed to export {asset_type.plural}: {e}", exc_info=True)
                self._log_error(f"Failed to export {asset_type.plural}: {e}",
                                {'assetType': asset_type.value})
                type_summary = AssetTypeSummary.failure(asset_type.value, str(e))

            summary.summaries.append(type_summary)
            if type_summary.stopped:
                summary.stopped = True
                break

        summary.end_time = utc_now()
        self._finalize_job(summary)

        if summary.total_processed > 0 or options.rebuild_index or options.force_refresh:
            self._rebuild_derived_caches(options)

        return summary

    def export_asset_type(self, asset_type: AssetType,
                          options: Optional[ExportOptions] = None) -> AssetTypeSummary:
        """Run listing, comparison, archiving and enrichment for one asset type."""
        options = options or ExportOptions()
        start = time.monotonic()
        api_calls_before = self.gateway.api_call_count

        logger.info(f"Starting export for {asset_type.plural}")
        self._update_job({'message': f"Listing {asset_type.plural}"})

        phase = time.monotonic()
        active, soft_deleted = self._list_assets(asset_type)
        listing_ms = _elapsed_ms(phase)
        self._log_info(f"Listed {len(active)} {asset_type.plural}",
                       {'assetType': asset_type.value, 'softDeleted': len(soft_deleted)})

        phase = time.monotonic()
        to_process, archived = self._determine_assets_to_process(asset_type, active, soft_deleted, options)
        comparison_ms = _elapsed_ms(phase)

        if not to_process:
            self._log_info(f"No {asset_type.plural} need enrichment - all {len(active)} are up to date",
                           {'assetType': asset_type.value})
            if archived:
                self._rebuild_type_cache(asset_type, options)
            return AssetTypeSummary(
                asset_type=asset_type.value,
                total_listed=len(active),
                cached=len(active),
                archived=archived,
                api_calls=self.gateway.api_call_count - api_calls_before,
                timing=TimingBreakdown(listing_ms=listing_ms, comparison_ms=comparison_ms,
                                       total_ms=_elapsed_ms(start)),
            )

        self._update_job({'message': f"Enriching {asset_type.plural}"})
        phase = time.monotonic()
        outcome = self._process_assets(asset_type, to_process, options)
        processing_ms = _elapsed_ms(phase)

        if outcome.stopped:
            self._log_warn(f"Stopped during {asset_type.value} batch processing",
                           {'assetType': asset_type.value})

        if outcome.results or archived:
            self._rebuild_type_cache(asset_type, options)

        type_summary = AssetTypeSummary(
            asset_type=asset_type.value,
            total_listed=len(active),
            total_processed=len(outcome.results),
            successful=outcome.successful,
            cached=len(active) - len(to_process),
            failed=len(outcome.errors),
            archived=archived,
            api_calls=self.gateway.api_call_count - api_calls_before,
            stopped=outcome.stopped,
            timing=TimingBreakdown(listing_ms=listing_ms, comparison_ms=comparison_ms,
                                   processing_ms=processing_ms, total_ms=_elapsed_ms(start)),
            errors=tuple(outcome.errors[:self.config.max_summary_errors]),
        )

        self._log_info(
            f"Completed export for {asset_type.plural}: {type_summary.successful} successful, "
            f"{type_summary.failed} failed",
            {'assetType': asset_type.value, 'apiCalls': type_summary.api_calls}
        )
        return type_summary

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _list_assets(self, asset_type: AssetType):
        try:
            listing = self.gateway.list_all(asset_type)
        except (ClientError, BotoCoreError, RetryExhaustedError) as e:
            self.error_handler.handle_api_error(e, f"list_{asset_type.plural}")
            raise
        active = [s for s in listing.items if summary_value(s, 'Status') != DELETED_STATUS]
        soft_deleted = [s for s in listing.items if summary_value(s, 'Status') == DELETED_STATUS]
        return prepare_assets_for_comparison(asset_type, active), soft_deleted

    def _determine_assets_to_process(self, asset_type: AssetType, active: List[PreparedAsset],
                                     soft_deleted: List[Dict[str, Any]],
                                     options: ExportOptions):
        """Return (assets to enrich, number of assets archived)."""
        refresh = options.refresh_options
        if refresh.is_metadata_only:
            # Permissions and tags have no change signal, so everyone is refreshed
            self._log_info(
                f"Metadata-only refresh: processing all {len(active)} {asset_type.plural}",
                {'assetType': asset_type.value, 'refreshOptions': refresh.to_dict()}
            )
            return list(active), 0

        engine = AssetComparisonEngine(self.cache_store, self.job_state, self.job_id)
        comparison = engine.compare_and_detect_changes(
            asset_type, active, soft_deleted,
            force_refresh=options.force_refresh or options.rebuild_index
        )
        archived = self._archive_deleted_assets(asset_type, comparison.deleted_asset_ids)

        self._log_info(
            f"Comparison result: {len(comparison.needs_update)} need updates, "
            f"{len(comparison.unchanged)} unchanged",
            {'assetType': asset_type.value}
        )
        to_process = [a for a in active
                      if a.id in comparison.needs_update and a.id not in comparison.deleted_asset_ids]
        return to_process, archived

    def _archive_deleted_assets(self, asset_type: AssetType, deleted_ids) -> int:
        if not deleted_ids:
            return 0

        self._log_info(f"Archiving {len(deleted_ids)} deleted {asset_type.plural}",
                       {'assetType': asset_type.value})
        requests = [ArchiveRequest(asset_type, asset_id, ARCHIVE_REASON, 'system')
                    for asset_id in sorted(deleted_ids)]
        results = self.archive_service.archive_assets_bulk(requests)

        succeeded = sum(1 for r in results if r.success)
        failed = [r for r in results if not r.success]
        if succeeded:
            logger.info(f"Archived {succeeded} deleted {asset_type.plural}")
        for result in failed:
            self._log_warn(f"Failed to archive {asset_type.value} {result.asset_id}: {result.error}",
                           {'assetType': asset_type.value})
        return succeeded

    def _process_assets(self, asset_type: AssetType, assets: List[PreparedAsset],
                        options: ExportOptions):
        registry = CollectionBatchRegistry(self.config.collection_flush_concurrency) \
            if asset_type.is_collection else None
        processor = create_processor(asset_type, self.gateway, self.cache_store, registry)
        context = ProcessingContext(
            force_refresh=options.force_refresh or options.rebuild_index,
            refresh_options=options.refresh_options,
            job_id=self.job_id,
        )

        progress = {'processed': 0}

        def on_batch_complete(batch_index: int, results: List[ProcessingResult]) -> None:
            progress['processed'] += len(results)
            if self.job_id:
                self.job_state.update_asset_progress(
                    self.job_id, asset_type.value, progress['processed'], len(assets)
                )

        batch_processor = BatchProcessor(
            cache_store=self.cache_store,
            registry=registry,
            callbacks=BatchCallbacks(on_batch_complete=on_batch_complete),
            progress_log_interval=self.config.progress_log_interval,
            identify=lambda asset: (asset.id, asset.name),
            asset_type=asset_type.value,
        )
        return batch_processor.process_in_batches(
            assets,
            batch_size=options.batch_size,
            max_concurrency=options.max_concurrency,
            item_processor=lambda asset: processor.process_asset(asset.original_summary, context),
            should_stop=self._stop_requested,
        )

    # ------------------------------------------------------------------
    # Caches
    # ------------------------------------------------------------------

    def _rebuild_type_cache(self, asset_type: AssetType, options: ExportOptions) -> None:
        if options.rebuild_index:
            return
        try:
            count = self.cache_store.rebuild_cache_for_asset_type(asset_type)
            logger.info(f"Rebuilt {asset_type.value} cache with {count} entries")
        except QuickSightExportError as e:
            logger.error(f"Failed to rebuild {asset_type.value} cache: {e.message}")

    def _clear_caches_for_rebuild(self) -> None:
        self._log_info("Rebuild index requested - clearing caches")
        try:
            removed = self.cache_store.clear_all_caches()
            self._log_info(f"Cleared {removed} cache objects")
        except QuickSightExportError as e:
            self._log_error(f"Failed to clear caches: {e.message}")

    def _rebuild_derived_caches(self, options: ExportOptions) -> None:
        try:
            if options.rebuild_index:
                for asset_type in AssetType:
                    self.cache_store.rebuild_cache_for_asset_type(asset_type)
                logger.info("Type caches rebuilt from export documents")

            field_count = self.cache_store.rebuild_field_cache()
            relationship_count = self.lineage_service.rebuild_lineage()
            self._log_info(
                f"Rebuilt field cache ({field_count} fields) and lineage ({relationship_count} relationships)"
            )
        except QuickSightExportError as e:
            logger.error(f"Failed to rebuild derived caches: {e.message}")
            self._log_warn("Failed to rebuild field and lineage caches after export - may need a manual rebuild")

    def _finalize_job(self, summary: ExportSummary) -> None:
        if summary.stopped:
            status, message = JobStatus.STOPPED, 'Stopped by user'
        elif summary.failed == 0:
            status, message = JobStatus.COMPLETED, 'Export completed successfully'
        else:
            status, message = JobStatus.FAILED, f"Export completed with {summary.failed} errors"

        self._log_info(
            f"Export finished: {summary.successful} successful, {summary.failed} failed",
            {'duration': round(summary.duration_ms, 2), 'apiCalls': summary.api_calls}
        )
        self._update_job({
            'status': status,
            'message': message,
            'endTime': summary.end_time.isoformat() if summary.end_time else None,
            'duration': round(summary.duration_ms, 2),
            'stats': {
                'totalAssets': summary.total_listed,
                'processedAssets': summary.successful,
                'failedAssets': summary.failed,
                'cachedAssets': summary.cached,
                'apiCalls': summary.api_calls,
            },
            'summary': summary.to_dict(),
        })

    @staticmethod
    def _options_dict(options: ExportOptions) -> Dict[str, Any]:
        return {
            'forceRefresh': options.force_refresh,
            'refreshOptions': options.refresh_options.to_dict(),
            'assetTypes': [t.value for t in options.asset_types],
            'batchSize': options.batch_size,
            'maxConcurrency': options.max_concurrency,
            'rebuildIndex': options.rebuild_index,
        }
