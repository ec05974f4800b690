"""
Sequential batches with bounded concurrency inside each batch.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple, TypeVar

from quicksight_export.models.asset import utc_now
from quicksight_export.models.export_result import (
    BatchProcessingResult, ExportError, ProcessingResult, ProcessingStatus
)
from quicksight_export.models.exceptions import QuickSightExportError
from quicksight_export.processors.collection_registry import CollectionBatchRegistry
from quicksight_export.services.cache_store import CacheStore

logger = logging.getLogger(__name__)

T = TypeVar('T')

BATCH_FLUSH_ID = 'BATCH_FLUSH'


@dataclass
class BatchCallbacks:
    """Optional progress hooks, always invoked from the calling thread."""

    on_batch_start: Optional[Callable[[int, int, int], None]] = None
    on_batch_complete: Optional[Callable[[int, List[ProcessingResult]], None]] = None
    on_item_complete: Optional[Callable[[ProcessingResult], None]] = None
    on_item_error: Optional[Callable[[ExportError], None]] = None


def create_batches(items: Sequence[T], batch_size: int) -> List[List[T]]:
    """Split items into contiguous chunks of batch_size (the last may be shorter)."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]


def _default_identity(item: Any) -> Tuple[str, str]:
    if isinstance(item, dict):
        asset_id = item.get('id') or item.get('assetId') or 'unknown'
        return str(asset_id), str(item.get('name') or item.get('assetName') or asset_id)
    return str(item), str(item)


class BatchProcessor:
    """
    Runs an item processor over a list in sequential batches.

    Within a batch at most max_concurrency items are in flight. A failing item
    becomes an error result and never aborts its batch. Pending collection
    writes are flushed once, after the last batch or an early stop.
    """

    def __init__(self,
                 cache_store: Optional[CacheStore] = None,
                 registry: Optional[CollectionBatchRegistry] = None,
                 callbacks: Optional[BatchCallbacks] = None,
                 progress_log_interval: int = 5,
                 identify: Callable[[Any], Tuple[str, str]] = _default_identity,
                 asset_type: str = 'unknown'):
        self.cache_store = cache_store
        self.registry = registry
        self.callbacks = callbacks or BatchCallbacks()
        self.progress_log_interval = progress_log_interval
        self.identify = identify
        self.asset_type = asset_type

    def _notify(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.warning(f"Progress callback {getattr(callback, '__name__', callback)} failed: {e}")

    def _error_result(self, item: Any, error: Exception) -> ProcessingResult:
        asset_id, asset_name = self.identify(item)
        return ProcessingResult(
            asset_id=asset_id,
            asset_name=asset_name,
            asset_type=self.asset_type,
            status=ProcessingStatus.ERROR,
            error=str(error),
        )

    def _run_batch(self, executor: ThreadPoolExecutor, batch: List[Any],
                   item_processor: Callable[[Any], ProcessingResult]) -> List[ProcessingResult]:
        futures = [executor.submit(item_processor, item) for item in batch]
        results = []
        for item, future in zip(batch, futures):
            try:
                results.append(future.result())
            except Exception as e:
                asset_id, _ = self.identify(item)
                logger.error(f"Unhandled error processing {asset_id}: {e}", exc_info=True)
                results.append(self._error_result(item, e))
        return results

    def process_in_batches(self,
                           items: Sequence[Any],
                           batch_size: int,
                           max_concurrency: int,
                           item_processor: Callable[[Any], ProcessingResult],
                           should_stop: Optional[Callable[[], bool]] = None) -> BatchProcessingResult:
        outcome = BatchProcessingResult()
        batches = create_batches(items, batch_size)
        total_batches = len(batches)
        started = utc_now()

        logger.info(
            f"Processing {len(items)} items in {total_batches} batches of up to {batch_size}",
            extra={'context': {'batch_size': batch_size, 'max_concurrency': max_concurrency}}
        )

        try:
            with ThreadPoolExecutor(max_workers=max(1, max_concurrency)) as executor:
                for batch_index, batch in enumerate(batches):
                    if should_stop is not None and should_stop():
                        logger.info(f"Stop requested before batch {batch_index + 1}/{total_batches}")
                        outcome.stopped = True
                        break

                    self._notify(self.callbacks.on_batch_start, batch_index, total_batches, len(batch))
                    batch_results = self._run_batch(executor, batch, item_processor)

                    batch_failures = 0
                    for result in batch_results:
                        outcome.results.append(result)
                        if result.status == ProcessingStatus.ERROR:
                            batch_failures += 1
                            error = ExportError(
                                asset_id=result.asset_id,
                                asset_name=result.asset_name,
                                error=result.error or 'Unknown error',
                                batch_index=batch_index,
                            )
                            outcome.errors.append(error)
                            self._notify(self.callbacks.on_item_error, error)
                        else:
                            self._notify(self.callbacks.on_item_complete, result)

                    self._notify(self.callbacks.on_batch_complete, batch_index, batch_results)

                    if batch_failures:
                        logger.warning(
                            f"Batch {batch_index + 1}/{total_batches} finished with "
                            f"{batch_failures} failures out of {len(batch)}"
                        )

                    is_last = batch_index == total_batches - 1
                    if (batch_index + 1) % self.progress_log_interval == 0 or is_last:
                        elapsed = (utc_now() - started).total_seconds()
                        processed = len(outcome.results)
                        rate = processed / elapsed if elapsed > 0 else float(processed)
                        logger.info(
                            f"Progress: {processed}/{len(items)} items, "
                            f"{math.floor(rate * 10) / 10} items/s, {len(outcome.errors)} errors",
                            extra={'context': {'batch': batch_index + 1, 'total_batches': total_batches}}
                        )
        finally:
            self._flush_collections(outcome)

        return outcome

    def _flush_collections(self, outcome: BatchProcessingResult) -> None:
        if self.registry is None or self.cache_store is None:
            return
        try:
            self.registry.flush(self.cache_store)
        except QuickSightExportError as e:
            logger.error(f"Failed to flush collection batches: {e.message}")
            outcome.errors.append(ExportError(
                asset_id=BATCH_FLUSH_ID,
                error=f"Failed to flush batch writes: {e.message}",
            ))
