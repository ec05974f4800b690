"""Tests for quicksight_export.services.archive against a moto S3 bucket."""

from unittest.mock import patch

from botocore.exceptions import ReadTimeoutError

from quicksight_export.models.asset import AssetStatus, AssetType, CacheEntry
from quicksight_export.services.archive import ArchiveRequest, ArchiveService

BUCKET = 'test-bucket'


def _seed_cache(cache_store, asset_type, asset_id):
    cache_store.save_type_cache(asset_type, [CacheEntry(asset_id=asset_id, asset_type=asset_type)])


class TestArchiveIndividualAsset:
    def test_document_moved_and_cache_updated(self, cache_store):
        cache_store.put_asset_document(AssetType.DASHBOARD, 'd1', {'assetId': 'd1'})
        _seed_cache(cache_store, AssetType.DASHBOARD, 'd1')

        result = ArchiveService(cache_store).archive_asset(AssetType.DASHBOARD, 'd1', 'deleted', 'system')

        assert result.success
        assert result.archive_path == 'archived/dashboards/d1.json'
        assert cache_store.get_asset_document(AssetType.DASHBOARD, 'd1') is None
        archived = cache_store.get_asset_document(AssetType.DASHBOARD, 'd1', archived=True)
        assert archived['archivedMetadata']['archiveReason'] == 'deleted'
        assert archived['archivedMetadata']['archivedBy'] == 'system'
        assert archived['archivedMetadata']['originalPath'] == 'assets/dashboards/d1.json'

        entry = cache_store.get_type_cache(AssetType.DASHBOARD)[0]
        assert entry.status == AssetStatus.ARCHIVED
        assert entry.export_file_path == 'archived/dashboards/d1.json'

    def test_first_archive_record_is_kept(self, cache_store):
        original = {'archivedAt': '2023-01-01T00:00:00+00:00', 'archiveReason': 'first'}
        cache_store.put_asset_document(AssetType.DATASET, 'ds1', {'assetId': 'ds1', 'archivedMetadata': original})

        ArchiveService(cache_store).archive_asset(AssetType.DATASET, 'ds1', 'second')

        archived = cache_store.get_asset_document(AssetType.DATASET, 'ds1', archived=True)
        assert archived['archivedMetadata'] == original

    def test_already_archived_counts_as_success(self, cache_store):
        cache_store.put_object(BUCKET, 'archived/analyses/a1.json', {'assetId': 'a1'})

        result = ArchiveService(cache_store).archive_asset(AssetType.ANALYSIS, 'a1')

        assert result.success

    def test_missing_document_is_reported_not_raised(self, cache_store):
        result = ArchiveService(cache_store).archive_asset(AssetType.ANALYSIS, 'ghost')

        assert not result.success
        assert "doesn't exist" in result.error


class TestArchiveCollectionItem:
    def test_item_moved_between_collections(self, cache_store):
        cache_store.put_collection_document(AssetType.USER, {'alice': {'assetId': 'alice'},
                                                             'bob': {'assetId': 'bob'}})
        _seed_cache(cache_store, AssetType.USER, 'alice')

        result = ArchiveService(cache_store).archive_asset(AssetType.USER, 'alice', 'deleted')

        assert result.success
        assert result.archive_path == 'archived/organization/users.json#alice'
        assert set(cache_store.get_collection_document(AssetType.USER)) == {'bob'}
        archived = cache_store.get_collection_document(AssetType.USER, archived=True)
        assert archived['alice']['archivedMetadata']['originalPath'] == 'assets/organization/users.json#alice'
        entry = cache_store.get_type_cache(AssetType.USER)[0]
        assert entry.status == AssetStatus.ARCHIVED
        assert entry.export_file_path == 'archived/organization/users.json'

    def test_missing_item_fails(self, cache_store):
        result = ArchiveService(cache_store).archive_asset(AssetType.GROUP, 'nobody')

        assert not result.success


class TestArchiveBulk:
    def test_one_result_per_request(self, cache_store):
        cache_store.put_asset_document(AssetType.DASHBOARD, 'd1', {'assetId': 'd1'})

        results = ArchiveService(cache_store).archive_assets_bulk([
            ArchiveRequest(AssetType.DASHBOARD, 'd1'),
            ArchiveRequest(AssetType.DASHBOARD, 'ghost'),
        ])

        assert [(r.asset_id, r.success) for r in results] == [('d1', True), ('ghost', False)]

    def test_network_errors_are_reported_per_item(self, cache_store, s3_client):
        cache_store.put_asset_document(AssetType.DASHBOARD, 'd1', {'assetId': 'd1'})
        cache_store.put_asset_document(AssetType.DASHBOARD, 'd2', {'assetId': 'd2'})

        timeout = ReadTimeoutError(endpoint_url='https://s3.us-east-1.amazonaws.com')
        with patch.object(s3_client, 'delete_object', side_effect=timeout):
            results = ArchiveService(cache_store).archive_assets_bulk([
                ArchiveRequest(AssetType.DASHBOARD, 'd1'),
                ArchiveRequest(AssetType.DASHBOARD, 'd2'),
            ])

        assert [(r.asset_id, r.success) for r in results] == [('d1', False), ('d2', False)]
        assert all('Read timeout' in r.error for r in results)
        assert cache_store.get_asset_document(AssetType.DASHBOARD, 'd1') is not None
