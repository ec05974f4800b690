"""
Asset lineage graph derived from the cache.
"""

import logging
from typing import Any, Dict, List, Optional

from quicksight_export.models.asset import AssetType, CacheEntry, StatusFilter, id_from_arn, utc_now
from quicksight_export.services.cache_store import CacheStore

logger = logging.getLogger(__name__)

LINEAGE_CACHE_KEY = 'cache/lineage-cache.json'

LINEAGE_ASSET_TYPES = [AssetType.DASHBOARD, AssetType.ANALYSIS, AssetType.DATASET, AssetType.DATASOURCE]


class LineageService:
    """Builds uses / used_by relationships between dashboards, analyses, datasets and data sources."""

    def __init__(self, cache_store: CacheStore):
        self.cache_store = cache_store

    def _node(self, entry: CacheEntry) -> Dict[str, Any]:
        node = {
            'assetId': entry.asset_id,
            'assetType': entry.asset_type.value,
            'assetName': entry.asset_name,
            'isArchived': entry.is_archived,
            'relationships': [],
        }
        if entry.asset_type == AssetType.DATASOURCE and entry.metadata.get('sourceType'):
            node['metadata'] = {'datasourceType': entry.metadata['sourceType']}
        return node

    def _link(self, lineage: Dict[str, Dict[str, Any]], source: Dict[str, Any],
              target_type: AssetType, target_id: Optional[str]) -> bool:
        """Add a 'uses' edge from source and the mirrored 'used_by' edge on the target."""
        target = lineage.get(f"{target_type.value}:{target_id}") if target_id else None
        if target is None:
            if target_id:
                logger.debug(f"{target_type.value} {target_id} used by {source['assetId']} is not cached")
            return False

        for origin, other, relationship in ((source, target, 'uses'), (target, source, 'used_by')):
            edge = {
                'sourceAssetId': origin['assetId'],
                'sourceAssetType': origin['assetType'],
                'sourceAssetName': origin['assetName'],
                'sourceIsArchived': origin['isArchived'],
                'targetAssetId': other['assetId'],
                'targetAssetType': other['assetType'],
                'targetAssetName': other['assetName'],
                'targetIsArchived': other['isArchived'],
                'relationshipType': relationship,
            }
            if edge not in origin['relationships']:
                origin['relationships'].append(edge)
        return True

    def build_lineage(self) -> Dict[str, Dict[str, Any]]:
        entries: List[CacheEntry] = []
        for asset_type in LINEAGE_ASSET_TYPES:
            entries.extend(self.cache_store.get_cache_entries(asset_type, StatusFilter.ALL))

        lineage = {f"{e.asset_type.value}:{e.asset_id}": self._node(e) for e in entries}

        for entry in entries:
            source = lineage[f"{entry.asset_type.value}:{entry.asset_id}"]
            data = entry.metadata.get('lineageData') or {}

            if entry.asset_type == AssetType.DASHBOARD:
                self._link(lineage, source, AssetType.ANALYSIS, id_from_arn(data.get('sourceAnalysisArn')))

            if entry.asset_type == AssetType.DATASET:
                for datasource_id in data.get('datasourceIds') or []:
                    self._link(lineage, source, AssetType.DATASOURCE, datasource_id)

            for dataset_id in data.get('datasetIds') or []:
                self._link(lineage, source, AssetType.DATASET, dataset_id)

        return lineage

    def rebuild_lineage(self) -> int:
        """Rebuild and persist the lineage cache. Returns the number of relationships."""
        lineage = self.build_lineage()
        relationship_count = sum(len(node['relationships']) for node in lineage.values())

        self.cache_store.put_object(self.cache_store.bucket, LINEAGE_CACHE_KEY, {
            'lastUpdated': utc_now().isoformat(),
            'assetCount': len(lineage),
            'relationshipCount': relationship_count,
            'lineageMap': list(lineage.values()),
        })
        logger.info(f"Saved lineage cache with {len(lineage)} assets and {relationship_count} relationships")
        return relationship_count
