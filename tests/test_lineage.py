"""Tests for quicksight_export.services.lineage against a moto S3 bucket."""

from quicksight_export.models.asset import AssetStatus, AssetType, CacheEntry
from quicksight_export.services.lineage import LINEAGE_CACHE_KEY, LineageService

BUCKET = 'test-bucket'
ANALYSIS_ARN = 'arn:aws:quicksight:us-east-1:123456789012:analysis/an1'


def _entry(asset_type, asset_id, status=AssetStatus.ACTIVE, **metadata):
    return CacheEntry(asset_id=asset_id, asset_type=asset_type, asset_name=f'{asset_id} name',
                      status=status, metadata=metadata)


def _seed(cache_store):
    cache_store.save_type_cache(AssetType.DASHBOARD, [
        _entry(AssetType.DASHBOARD, 'd1', lineageData={'sourceAnalysisArn': ANALYSIS_ARN, 'datasetIds': ['ds1']}),
    ])
    cache_store.save_type_cache(AssetType.ANALYSIS, [
        _entry(AssetType.ANALYSIS, 'an1', lineageData={'datasetIds': ['ds1', 'missing']}),
    ])
    cache_store.save_type_cache(AssetType.DATASET, [
        _entry(AssetType.DATASET, 'ds1', lineageData={'datasourceIds': ['src1'], 'datasetIds': []}),
    ])
    cache_store.save_type_cache(AssetType.DATASOURCE, [
        _entry(AssetType.DATASOURCE, 'src1', status=AssetStatus.ARCHIVED, sourceType='ATHENA'),
    ])


def _targets(node, relationship):
    return sorted((r['targetAssetType'], r['targetAssetId'])
                  for r in node['relationships'] if r['relationshipType'] == relationship)


class TestLineage:
    def test_uses_and_used_by_are_mirrored(self, cache_store):
        _seed(cache_store)

        lineage = LineageService(cache_store).build_lineage()

        assert _targets(lineage['dashboard:d1'], 'uses') == [('analysis', 'an1'), ('dataset', 'ds1')]
        assert _targets(lineage['analysis:an1'], 'uses') == [('dataset', 'ds1')]
        assert _targets(lineage['analysis:an1'], 'used_by') == [('dashboard', 'd1')]
        assert _targets(lineage['dataset:ds1'], 'used_by') == [('analysis', 'an1'), ('dashboard', 'd1')]
        assert _targets(lineage['datasource:src1'], 'used_by') == [('dataset', 'ds1')]

    def test_archived_assets_are_flagged(self, cache_store):
        _seed(cache_store)

        lineage = LineageService(cache_store).build_lineage()

        datasource = lineage['datasource:src1']
        assert datasource['isArchived'] is True
        assert datasource['metadata'] == {'datasourceType': 'ATHENA'}
        edge = next(r for r in lineage['dataset:ds1']['relationships'] if r['targetAssetType'] == 'datasource')
        assert edge['relationshipType'] == 'uses'
        assert edge['targetIsArchived'] is True

    def test_rebuild_persists_lineage_cache(self, cache_store):
        _seed(cache_store)

        count = LineageService(cache_store).rebuild_lineage()

        assert count == 8
        stored = cache_store.get_object(BUCKET, LINEAGE_CACHE_KEY)
        assert stored['assetCount'] == 4
        assert stored['relationshipCount'] == 8
        assert len(stored['lineageMap']) == 4

    def test_empty_cache(self, cache_store):
        assert LineageService(cache_store).rebuild_lineage() == 0
