"""
Deferred writes for collection-stored asset kinds (folders, users, groups).
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from quicksight_export.models.asset import AssetType
from quicksight_export.models.exceptions import CacheError, QuickSightExportError
from quicksight_export.services.cache_store import CacheStore, collection_document_key

logger = logging.getLogger(__name__)

BatchKey = Tuple[str, str]


@dataclass
class FlushResult:
    documents_written: int = 0
    items_written: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)


class CollectionBatchRegistry:
    """
    Accumulates collection documents during an export run.

    Processors call add(); nothing reaches S3 until flush(), which merges each
    pending batch into its collection document with one read and one write.
    Only one flush runs at a time.
    """

    def __init__(self, max_concurrent_writes: int = 3):
        self.max_concurrent_writes = max_concurrent_writes
        self._pending: Dict[BatchKey, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()

    def add(self, bucket: str, asset_type: AssetType, asset_id: str, document: Dict[str, Any]) -> BatchKey:
        key = (bucket, collection_document_key(asset_type))
        with self._lock:
            self._pending.setdefault(key, {})[asset_id] = document
        return key

    @property
    def pending_count(self) -> int:
        with self._lock:
            return sum(len(items) for items in self._pending.values())

    def pending_keys(self) -> List[BatchKey]:
        with self._lock:
            return list(self._pending.keys())

    def clear(self) -> None:
        with self._lock:
            self._pending.clear()

    def _write_batch(self, store: CacheStore, key: BatchKey, items: Dict[str, Dict[str, Any]]) -> int:
        bucket, object_key = key
        document = store.get_object(bucket, object_key) or {}
        if not isinstance(document, dict):
            raise CacheError(f"Collection document {object_key} is not an object")
        document.update(items)
        store.put_object(bucket, object_key, document)
        logger.info(f"Flushed {len(items)} items to {object_key} ({len(document)} total)")
        return len(items)

    def flush(self, store: CacheStore) -> FlushResult:
        """
        Write every pending batch and clear the registry.

        Raises:
            CacheError: If any collection document could not be written; the
                other documents are still written.
        """
        with self._flush_lock:
            with self._lock:
                pending = self._pending
                self._pending = {}

            result = FlushResult()
            if not pending:
                return result

            with ThreadPoolExecutor(max_workers=self.max_concurrent_writes) as executor:
                futures = {key: executor.submit(self._write_batch, store, key, items)
                           for key, items in pending.items()}
                for key, future in futures.items():
                    try:
                        result.items_written += future.result()
                        result.documents_written += 1
                    except QuickSightExportError as e:
                        logger.error(f"Failed to flush collection {key[1]}: {e.message}")
                        result.failures.append((key[1], e.message))

            if result.failures:
                raise CacheError(
                    f"Failed to flush {len(result.failures)} collection document(s): "
                    + "; ".join(f"{k}: {msg}" for k, msg in result.failures),
                    context={'failures': result.failures}
                )
            return result
