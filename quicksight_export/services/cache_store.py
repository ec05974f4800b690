"""
S3-backed asset cache and export document store.

Layout inside the bucket:

    cache/<assetType>.json                  per-type cache (list of entries)
    cache/metadata.json                     counts and per-type rebuild times
    cache/field-cache.json                  flattened dataset fields
    assets/<plural>/<id>.json               individual export documents
    archived/<plural>/<id>.json
    assets/organization/<plural>.json       collection documents keyed by asset ID
    archived/organization/<plural>.json
"""

import json
import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from quicksight_export.models.asset import (
    AssetType, AssetStatus, CacheEntry, MasterCache, StatusFilter, ALL_ASSET_TYPES, utc_now
)
from quicksight_export.models.config import ExportConfig
from quicksight_export.models.exceptions import CacheError, S3Error
from quicksight_export.services.base import BaseAWSService
from quicksight_export.services.cache_entries import build_cache_entry

logger = logging.getLogger(__name__)

CACHE_PREFIX = 'cache/'
CACHE_METADATA_KEY = 'cache/metadata.json'
FIELD_CACHE_KEY = 'cache/field-cache.json'
CACHE_VERSION = '2.0'
ACTIVE_PREFIX = 'assets'
ARCHIVE_PREFIX = 'archived'

_UNSAFE_ID_CHARS = re.compile(r'[\\/:*?"<>|]')

MAX_CONCURRENT_READS = 20


def sanitize_asset_id(asset_id: str) -> str:
    """Replace characters that are unsafe in object keys with underscores."""
    return _UNSAFE_ID_CHARS.sub('_', asset_id)


def type_cache_key(asset_type: AssetType) -> str:
    return f"{CACHE_PREFIX}{asset_type.value}.json"


def asset_document_key(asset_type: AssetType, asset_id: str, archived: bool = False) -> str:
    prefix = ARCHIVE_PREFIX if archived else ACTIVE_PREFIX
    return f"{prefix}/{asset_type.plural}/{sanitize_asset_id(asset_id)}.json"


def collection_document_key(asset_type: AssetType, archived: bool = False) -> str:
    prefix = ARCHIVE_PREFIX if archived else ACTIVE_PREFIX
    return f"{prefix}/organization/{asset_type.plural}.json"


def json_default(value: Any) -> Any:
    """JSON encoder hook for values returned by boto3."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return value.decode('utf-8', errors='replace')
    if isinstance(value, set):
        return sorted(value)
    return str(value)


def _transport_error(action: str, bucket: str, key: str, error: BotoCoreError) -> S3Error:
    """Connection and timeout errors carry no service error code; use the botocore class name."""
    return S3Error(f"Failed to {action} s3://{bucket}/{key}: {error}",
                   error_code=type(error).__name__, context={'key': key})


class CacheStore(BaseAWSService):
    """Reads and writes the per-type caches and export documents in S3."""

    def __init__(self, config: ExportConfig, s3_client: Any = None):
        super().__init__(config)
        self.bucket = config.s3_bucket_name
        if s3_client is not None:
            self._clients['s3'] = s3_client
        self._type_locks: Dict[AssetType, threading.Lock] = {t: threading.Lock() for t in ALL_ASSET_TYPES}
        self._metadata_lock = threading.Lock()

    @property
    def s3(self) -> Any:
        return self.get_client('s3')

    # ------------------------------------------------------------------
    # Object level access
    # ------------------------------------------------------------------

    def get_object(self, bucket: str, key: str) -> Optional[Any]:
        """Return the decoded JSON body, or None when the key does not exist."""
        try:
            response = self.s3.get_object(Bucket=bucket, Key=key)
            return json.loads(response['Body'].read())
        except ClientError as e:
            error_code = e.response['Error']['Code']
            if error_code in ('NoSuchKey', '404'):
                return None
            raise S3Error(
                f"Failed to read s3://{bucket}/{key}: {e.response['Error'].get('Message', error_code)}",
                error_code=error_code,
                context={'key': key}
            ) from e
        except BotoCoreError as e:
            raise _transport_error('read', bucket, key, e) from e
        except json.JSONDecodeError as e:
            raise CacheError(f"Object s3://{bucket}/{key} is not valid JSON: {e}", context={'key': key}) from e

    def put_object(self, bucket: str, key: str, body: Any) -> None:
        try:
            self.s3.put_object(
                Bucket=bucket,
                Key=key,
                Body=json.dumps(body, default=json_default).encode('utf-8'),
                ContentType='application/json',
                ServerSideEncryption='AES256'
            )
        except ClientError as e:
            error_code = e.response['Error']['Code']
            raise S3Error(
                f"Failed to write s3://{bucket}/{key}: {e.response['Error'].get('Message', error_code)}",
                error_code=error_code,
                context={'key': key}
            ) from e
        except BotoCoreError as e:
            raise _transport_error('write', bucket, key, e) from e

    def delete_object(self, bucket: str, key: str) -> None:
        try:
            self.s3.delete_object(Bucket=bucket, Key=key)
        except ClientError as e:
            error_code = e.response['Error']['Code']
            raise S3Error(f"Failed to delete s3://{bucket}/{key}", error_code=error_code,
                          context={'key': key}) from e
        except BotoCoreError as e:
            raise _transport_error('delete', bucket, key, e) from e

    def object_exists(self, bucket: str, key: str) -> bool:
        try:
            self.s3.head_object(Bucket=bucket, Key=key)
            return True
        except ClientError as e:
            if e.response['Error']['Code'] in ('404', 'NoSuchKey', 'NotFound'):
                return False
            raise S3Error(f"Failed to check s3://{bucket}/{key}",
                          error_code=e.response['Error']['Code'], context={'key': key}) from e
        except BotoCoreError as e:
            raise _transport_error('check', bucket, key, e) from e

    def list_objects(self, bucket: str, prefix: str) -> List[str]:
        """List every key under a prefix."""
        keys = []
        paginator = self.s3.get_paginator('list_objects_v2')
        try:
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                keys.extend(obj['Key'] for obj in page.get('Contents', []))
        except ClientError as e:
            raise S3Error(f"Failed to list s3://{bucket}/{prefix}",
                          error_code=e.response['Error']['Code'], context={'prefix': prefix}) from e
        except BotoCoreError as e:
            raise _transport_error('list', bucket, prefix, e) from e
        return keys

    # ------------------------------------------------------------------
    # Type caches and the master view
    # ------------------------------------------------------------------

    def get_type_cache(self, asset_type: AssetType) -> Optional[List[CacheEntry]]:
        data = self.get_object(self.bucket, type_cache_key(asset_type))
        if data is None:
            return None
        if not isinstance(data, list):
            raise CacheError(f"Cache for {asset_type.value} is not a list", context={'asset_type': asset_type.value})
        return [CacheEntry.from_dict(item) for item in data]

    def save_type_cache(self, asset_type: AssetType, entries: List[CacheEntry]) -> None:
        self.put_object(self.bucket, type_cache_key(asset_type), [e.to_dict() for e in entries])
        self._update_cache_metadata(asset_type, len(entries))

    def get_cache_metadata(self) -> Dict[str, Any]:
        return self.get_object(self.bucket, CACHE_METADATA_KEY) or {
            'version': CACHE_VERSION,
            'lastUpdated': None,
            'assetCounts': {},
            'assetTimestamps': {},
        }

    def _update_cache_metadata(self, asset_type: AssetType, count: int) -> None:
        with self._metadata_lock:
            metadata = self.get_cache_metadata()
            now = utc_now().isoformat()
            metadata['version'] = CACHE_VERSION
            metadata['lastUpdated'] = now
            metadata.setdefault('assetCounts', {})[asset_type.value] = count
            metadata.setdefault('assetTimestamps', {})[asset_type.value] = now
            self.put_object(self.bucket, CACHE_METADATA_KEY, metadata)

    def get_cache_entries(self, asset_type: AssetType,
                          status_filter: StatusFilter = StatusFilter.ACTIVE) -> List[CacheEntry]:
        entries = self.get_type_cache(asset_type) or []
        return [e for e in entries if status_filter.matches(e.status)]

    def get_master_cache(self, status_filter: StatusFilter = StatusFilter.ACTIVE,
                         asset_type: Optional[AssetType] = None) -> MasterCache:
        """Merge the per-type caches into a read-only view."""
        master = MasterCache(version=CACHE_VERSION)
        for current in ([asset_type] if asset_type else ALL_ASSET_TYPES):
            master.add_entries(current, self.get_cache_entries(current, status_filter))
        return master

    def update_cache_entry(self, asset_type: AssetType, asset_id: str, **changes) -> bool:
        """Apply attribute changes to one entry of a type cache. Returns False if absent."""
        with self._type_locks[asset_type]:
            entries = self.get_type_cache(asset_type) or []
            found = False
            for entry in entries:
                if entry.asset_id == asset_id:
                    for name, value in changes.items():
                        setattr(entry, name, value)
                    found = True
            if found:
                self.save_type_cache(asset_type, entries)
            return found

    # ------------------------------------------------------------------
    # Export documents
    # ------------------------------------------------------------------

    def get_collection_document(self, asset_type: AssetType, archived: bool = False) -> Dict[str, Any]:
        return self.get_object(self.bucket, collection_document_key(asset_type, archived)) or {}

    def put_collection_document(self, asset_type: AssetType, document: Dict[str, Any],
                                archived: bool = False) -> None:
        self.put_object(self.bucket, collection_document_key(asset_type, archived), document)

    def get_asset_document(self, asset_type: AssetType, asset_id: str,
                           archived: bool = False) -> Optional[Dict[str, Any]]:
        if asset_type.is_collection:
            return self.get_collection_document(asset_type, archived).get(asset_id)
        return self.get_object(self.bucket, asset_document_key(asset_type, asset_id, archived))

    def put_asset_document(self, asset_type: AssetType, asset_id: str, document: Dict[str, Any]) -> str:
        """Write an individual export document and return its key."""
        if asset_type.is_collection:
            raise CacheError(f"{asset_type.value} documents are written through the collection registry")
        key = asset_document_key(asset_type, asset_id)
        self.put_object(self.bucket, key, document)
        return key

    # ------------------------------------------------------------------
    # Rebuilds
    # ------------------------------------------------------------------

    def _list_document_keys(self, asset_type: AssetType, archived: bool) -> List[str]:
        prefix = f"{ARCHIVE_PREFIX if archived else ACTIVE_PREFIX}/{asset_type.plural}/"
        return [k for k in self.list_objects(self.bucket, prefix) if k.endswith('.json')]

    def _entry_from_key(self, asset_type: AssetType, key: str, status: AssetStatus,
                        existing: Dict[str, CacheEntry]) -> Optional[CacheEntry]:
        try:
            document = self.get_object(self.bucket, key)
        except (S3Error, CacheError) as e:
            logger.warning(f"Skipping unreadable export document {key}: {e}")
            return None
        if not document:
            return None
        fallback_id = key.rsplit('/', 1)[-1][:-len('.json')]
        entry = build_cache_entry(asset_type, document, status, key, fallback_id=fallback_id,
                                  existing=existing.get(document.get('assetId') or fallback_id))
        return entry

    def _individual_entries(self, asset_type: AssetType, existing: Dict[str, CacheEntry]) -> List[CacheEntry]:
        entries: List[CacheEntry] = []
        for archived, status in ((False, AssetStatus.ACTIVE), (True, AssetStatus.ARCHIVED)):
            keys = self._list_document_keys(asset_type, archived)
            if not keys:
                continue
            with ThreadPoolExecutor(max_workers=MAX_CONCURRENT_READS) as executor:
                results = executor.map(
                    lambda k, s=status: self._entry_from_key(asset_type, k, s, existing), keys
                )
                entries.extend(e for e in results if e is not None)
        return entries

    def _collection_entries(self, asset_type: AssetType, existing: Dict[str, CacheEntry]) -> List[CacheEntry]:
        entries: List[CacheEntry] = []
        for archived, status in ((False, AssetStatus.ACTIVE), (True, AssetStatus.ARCHIVED)):
            key = collection_document_key(asset_type, archived)
            for asset_id, document in self.get_collection_document(asset_type, archived).items():
                if not isinstance(document, dict):
                    continue
                entry = build_cache_entry(asset_type, document, status, key,
                                          fallback_id=asset_id, existing=existing.get(asset_id))
                if entry is not None:
                    entries.append(entry)
        return entries

    def rebuild_cache_for_asset_type(self, asset_type: AssetType) -> int:
        """
        Rebuild cache/<type>.json from the persisted export documents.

        Returns:
            int: Number of entries written
        """
        start = utc_now()
        logger.info(f"Starting cache rebuild for {asset_type.value}")

        with self._type_locks[asset_type]:
            existing = {e.asset_id: e for e in (self.get_type_cache(asset_type) or [])}

            if asset_type.is_collection:
                entries = self._collection_entries(asset_type, existing)
            else:
                entries = self._individual_entries(asset_type, existing)

            self.save_type_cache(asset_type, entries)

        duration = (utc_now() - start).total_seconds()
        logger.info(
            f"Cache rebuild for {asset_type.value} completed with {len(entries)} entries in {duration:.2f}s",
            extra={'context': {'asset_type': asset_type.value, 'count': len(entries)}}
        )
        return len(entries)

    def rebuild_field_cache(self) -> int:
        """Flatten dataset fields of active entries into cache/field-cache.json."""
        fields = []
        for entry in self.get_cache_entries(AssetType.DATASET, StatusFilter.ACTIVE):
            metadata = entry.metadata or {}
            regular = [dict(f, isCalculated=False) for f in metadata.get('fields') or []]
            calculated = [dict(f, isCalculated=True) for f in metadata.get('calculatedFields') or []]
            for field_data in regular + calculated:
                fields.append({
                    'fieldId': field_data.get('fieldId'),
                    'fieldName': field_data.get('fieldName'),
                    'displayName': field_data.get('displayName') or field_data.get('fieldName'),
                    'dataType': field_data.get('dataType'),
                    'description': field_data.get('description', '') if not field_data['isCalculated'] else '',
                    'isCalculated': field_data['isCalculated'],
                    'expression': field_data.get('expression') if field_data['isCalculated'] else None,
                    'sourceAssetType': AssetType.DATASET.value,
                    'sourceAssetId': entry.asset_id,
                    'sourceAssetName': entry.asset_name,
                    'datasetId': entry.asset_id,
                    'datasetName': entry.asset_name,
                    'lastUpdated': entry.last_updated_time.isoformat() if entry.last_updated_time else None,
                    'tags': entry.tags,
                })

        self.put_object(self.bucket, FIELD_CACHE_KEY, {
            'lastUpdated': utc_now().isoformat(),
            'fieldCount': len(fields),
            'fields': fields,
        })
        logger.info(f"Field cache rebuilt with {len(fields)} fields")
        return len(fields)

    def clear_all_caches(self) -> int:
        """Delete every object under cache/. Export documents are left untouched."""
        keys = self.list_objects(self.bucket, CACHE_PREFIX)
        for key in keys:
            self.delete_object(self.bucket, key)
        logger.info(f"Cleared {len(keys)} cache objects")
        return len(keys)
