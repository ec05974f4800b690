"""
Base asset processor: fetch, assemble and persist one asset's export document.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from quicksight_export.models.asset import (
    AssetType, EnrichmentStatus, StorageType, summary_asset_id, summary_asset_name,
    summary_value, utc_now
)
from quicksight_export.models.exceptions import QuickSightExportError
from quicksight_export.models.export_result import ProcessingResult, ProcessingStatus
from quicksight_export.models.processing import ProcessingContext, RefreshOptions
from quicksight_export.processors.collection_registry import CollectionBatchRegistry
from quicksight_export.services.cache_store import CacheStore
from quicksight_export.services.quicksight_gateway import QuickSightGateway

logger = logging.getLogger(__name__)

# Failures a processor may absorb for optional components
FETCH_ERRORS = (ClientError, BotoCoreError, QuickSightExportError)

CORE_RESPONSE_KEYS = ('list', 'describe', 'definition', 'permissions', 'tags')

# Resource names used in QuickSight ARNs
_ARN_RESOURCE = {
    AssetType.DASHBOARD: 'dashboard',
    AssetType.ANALYSIS: 'analysis',
    AssetType.DATASET: 'dataset',
    AssetType.DATASOURCE: 'datasource',
    AssetType.FOLDER: 'folder',
    AssetType.USER: 'user',
    AssetType.GROUP: 'group',
}


@dataclass(frozen=True)
class ProcessorCapabilities:
    """Which optional components an asset kind supports."""

    has_definition: bool = False
    has_permissions: bool = True
    has_tags: bool = True
    has_special_operations: bool = False


def to_sdk_format(summary: Dict[str, Any]) -> Dict[str, Any]:
    """Return a list summary with PascalCase keys and ISO 8601 timestamps."""
    result = {}
    for key, value in summary.items():
        if key and key[0].islower():
            key = key[0].upper() + key[1:]
        if isinstance(value, datetime):
            value = value.isoformat()
        result[key] = value
    return result


class BaseAssetProcessor(ABC):
    """
    Processes a single listed asset into an export document.

    Subclasses set asset_type and capabilities and implement execute_describe;
    the optional execute_* hooks are only called when the matching capability
    is set. process_asset never raises: every outcome is a ProcessingResult.
    """

    asset_type: AssetType
    capabilities = ProcessorCapabilities()

    def __init__(self,
                 gateway: QuickSightGateway,
                 cache_store: CacheStore,
                 registry: Optional[CollectionBatchRegistry] = None):
        self.gateway = gateway
        self.cache_store = cache_store
        self.registry = registry

    @property
    def storage_type(self) -> StorageType:
        return StorageType.COLLECTION if self.asset_type.is_collection else StorageType.INDIVIDUAL

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def get_asset_id(self, summary: Dict[str, Any]) -> Optional[str]:
        return summary_asset_id(self.asset_type, summary)

    def get_asset_name(self, summary: Dict[str, Any]) -> str:
        return summary_asset_name(self.asset_type, summary)

    @abstractmethod
    def execute_describe(self, asset_id: str, asset_name: str, summary: Dict[str, Any]) -> Any:
        """Return the describe payload for the asset; every kind must provide one."""

    def execute_definition(self, asset_id: str) -> Any:
        return self.gateway.describe_definition(self.asset_type, asset_id)

    def execute_permissions(self, asset_id: str) -> Any:
        return self.gateway.describe_permissions(self.asset_type, asset_id)

    def execute_tags(self, asset_id: str, summary: Dict[str, Any]) -> Any:
        return self.gateway.describe_tags(self.resource_arn(asset_id, summary))

    def execute_special_operations(self, asset_id: str, asset_name: str) -> Dict[str, Any]:
        return {}

    def resource_arn(self, asset_id: str, summary: Dict[str, Any]) -> str:
        arn = summary_value(summary, 'Arn')
        if arn:
            return arn
        config = self.gateway.config
        return (f"arn:aws:quicksight:{config.aws_region}:{config.aws_account_id}:"
                f"{_ARN_RESOURCE[self.asset_type]}/{asset_id}")

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process_asset(self, summary: Dict[str, Any], context: ProcessingContext) -> ProcessingResult:
        start = time.monotonic()
        asset_id = self.get_asset_id(summary)
        asset_name = self.get_asset_name(summary)
        timing: Dict[str, float] = {}

        if not asset_id:
            logger.error(f"Asset ID not found in {self.asset_type.value} summary",
                         extra={'context': {'summary_keys': sorted(summary.keys())}})
            return ProcessingResult(
                asset_id='unknown',
                asset_name=asset_name or 'unknown',
                asset_type=self.asset_type.value,
                status=ProcessingStatus.ERROR,
                error=f"Asset ID not found in summary for {self.asset_type.value}",
            )

        options = context.refresh_options or RefreshOptions()
        result = ProcessingResult(
            asset_id=asset_id,
            asset_name=asset_name,
            asset_type=self.asset_type.value,
            status=ProcessingStatus.SUCCESS,
            details={
                'definition': self.capabilities.has_definition and options.definitions,
                'permissions': self.capabilities.has_permissions and options.permissions,
                'tags': self.capabilities.has_tags and options.tags,
                'storageType': self.storage_type.value,
            },
        )

        try:
            phase = time.monotonic()
            existing = self._load_existing_document(asset_id) if options.is_metadata_only else None
            timing['cacheCheck'] = (time.monotonic() - phase) * 1000

            phase = time.monotonic()
            components = self._fetch_components(asset_id, asset_name, summary, context, existing)
            timing['dataFetching'] = (time.monotonic() - phase) * 1000

            phase = time.monotonic()
            document = self.build_export_document(asset_id, asset_name, summary, components, options)
            self._save(asset_id, document)
            timing['saving'] = (time.monotonic() - phase) * 1000

        except Exception as e:
            result.status = ProcessingStatus.ERROR
            result.error = str(e)
            logger.error(f"Failed to process {self.asset_type.value} {asset_id}: {e}",
                         extra={'context': {'asset_id': asset_id, 'asset_type': self.asset_type.value}})

        timing['total'] = (time.monotonic() - start) * 1000
        result.timing = timing
        return result

    def _load_existing_document(self, asset_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self.cache_store.get_asset_document(self.asset_type, asset_id)
        except QuickSightExportError as e:
            logger.debug(f"No reusable export document for {self.asset_type.value} {asset_id}: {e}")
            return None

    def _fetch_components(self, asset_id: str, asset_name: str, summary: Dict[str, Any],
                          context: ProcessingContext,
                          existing: Optional[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        """
        Collect each component as {'data': ..., 'timestamp': ...}.

        On a metadata-only refresh, describe and definition data (and any
        component not being refreshed) are carried over from the existing
        document with their original timestamps.
        """
        options = context.refresh_options or RefreshOptions()
        metadata_only = options.is_metadata_only
        previous = (existing or {}).get('apiResponses') or {}
        now = utc_now().isoformat()
        components: Dict[str, Dict[str, Any]] = {}

        def fresh(data: Any) -> Dict[str, Any]:
            return {'data': data, 'timestamp': now}

        if not metadata_only or options.definitions or 'describe' not in previous:
            components['describe'] = fresh(self.execute_describe(asset_id, asset_name, summary))
        else:
            components['describe'] = previous['describe']

        if self.capabilities.has_definition:
            if options.definitions:
                components['definition'] = fresh(self.execute_definition(asset_id))
            elif metadata_only and 'definition' in previous:
                components['definition'] = previous['definition']

        if self.capabilities.has_permissions:
            if options.permissions:
                components['permissions'] = fresh(self._fetch_permissions(asset_id, context))
            elif metadata_only and 'permissions' in previous:
                components['permissions'] = previous['permissions']

        if self.capabilities.has_tags:
            if options.tags:
                components['tags'] = fresh(self._fetch_tags(asset_id, summary, context))
            elif metadata_only and 'tags' in previous:
                components['tags'] = previous['tags']

        if self.capabilities.has_special_operations:
            for key, value in self.execute_special_operations(asset_id, asset_name).items():
                components[key] = fresh(value)

        return components

    def _fetch_permissions(self, asset_id: str, context: ProcessingContext) -> List[Dict[str, Any]]:
        if context.bulk_permissions is not None and asset_id in context.bulk_permissions:
            return context.bulk_permissions[asset_id]
        try:
            return self.execute_permissions(asset_id) or []
        except FETCH_ERRORS as e:
            logger.warning(f"Could not get permissions for {self.asset_type.value} {asset_id}: {e}")
            return []

    def _fetch_tags(self, asset_id: str, summary: Dict[str, Any],
                    context: ProcessingContext) -> List[Dict[str, str]]:
        if context.bulk_tags is not None and asset_id in context.bulk_tags:
            return [{'Key': k, 'Value': v} for k, v in context.bulk_tags[asset_id].items()]
        try:
            return self.execute_tags(asset_id, summary) or []
        except FETCH_ERRORS as e:
            logger.warning(f"Could not get tags for {self.asset_type.value} {asset_id}: {e}")
            return []

    def build_export_document(self, asset_id: str, asset_name: str, summary: Dict[str, Any],
                              components: Dict[str, Dict[str, Any]],
                              options: RefreshOptions) -> Dict[str, Any]:
        now = utc_now().isoformat()
        api_responses: Dict[str, Any] = {'list': {'timestamp': now, 'data': to_sdk_format(summary)}}
        api_responses.update(components)

        enrichment_timestamps = {
            key: value.get('timestamp') for key, value in components.items()
            if key in CORE_RESPONSE_KEYS and value.get('timestamp')
        }

        return {
            'assetId': asset_id,
            'assetType': self.asset_type.value,
            'assetName': asset_name,
            'enrichmentStatus': (EnrichmentStatus.METADATA_UPDATE if options.is_metadata_only
                                 else EnrichmentStatus.ENRICHED).value,
            'enrichmentTimestamps': enrichment_timestamps,
            'apiResponses': api_responses,
        }

    def _save(self, asset_id: str, document: Dict[str, Any]) -> None:
        if self.storage_type == StorageType.COLLECTION:
            if self.registry is None:
                raise QuickSightExportError(
                    f"{self.asset_type.value} processor has no collection registry"
                )
            self.registry.add(self.cache_store.bucket, self.asset_type, asset_id, document)
        else:
            self.cache_store.put_asset_document(self.asset_type, asset_id, document)
