"""Tests for quicksight_export.processors.collection_registry.

Covers:
- add: grouping by collection document, last write wins per asset
- flush: merge into existing documents, registry cleared, empty flush
- flush failures: other documents still written, CacheError raised
"""

from unittest.mock import MagicMock

import pytest

from quicksight_export.models.asset import AssetType
from quicksight_export.models.exceptions import CacheError, S3Error
from quicksight_export.processors.collection_registry import CollectionBatchRegistry

BUCKET = 'test-bucket'


class TestAdd:
    def test_items_grouped_by_collection_document(self):
        registry = CollectionBatchRegistry()

        registry.add(BUCKET, AssetType.USER, 'alice', {'v': 1})
        registry.add(BUCKET, AssetType.USER, 'bob', {'v': 1})
        registry.add(BUCKET, AssetType.GROUP, 'admins', {'v': 1})

        assert registry.pending_count == 3
        assert sorted(registry.pending_keys()) == [
            (BUCKET, 'assets/organization/groups.json'),
            (BUCKET, 'assets/organization/users.json'),
        ]

    def test_same_asset_added_twice_keeps_latest(self):
        registry = CollectionBatchRegistry()

        registry.add(BUCKET, AssetType.USER, 'alice', {'v': 1})
        registry.add(BUCKET, AssetType.USER, 'alice', {'v': 2})

        assert registry.pending_count == 1

    def test_clear(self):
        registry = CollectionBatchRegistry()
        registry.add(BUCKET, AssetType.USER, 'alice', {})

        registry.clear()

        assert registry.pending_count == 0


class TestFlush:
    def test_merges_into_existing_document(self, cache_store):
        cache_store.put_collection_document(AssetType.USER, {'carol': {'assetId': 'carol'},
                                                             'alice': {'assetId': 'alice', 'old': True}})
        registry = CollectionBatchRegistry()
        registry.add(BUCKET, AssetType.USER, 'alice', {'assetId': 'alice'})
        registry.add(BUCKET, AssetType.USER, 'bob', {'assetId': 'bob'})
        registry.add(BUCKET, AssetType.FOLDER, 'f1', {'assetId': 'f1'})

        result = registry.flush(cache_store)

        assert result.documents_written == 2
        assert result.items_written == 3
        assert registry.pending_count == 0
        users = cache_store.get_collection_document(AssetType.USER)
        assert set(users) == {'alice', 'bob', 'carol'}
        assert users['alice'] == {'assetId': 'alice'}
        assert set(cache_store.get_collection_document(AssetType.FOLDER)) == {'f1'}

    def test_empty_flush_writes_nothing(self):
        store = MagicMock()

        result = CollectionBatchRegistry().flush(store)

        assert result.documents_written == 0
        store.put_object.assert_not_called()

    def test_failed_document_does_not_block_others(self):
        store = MagicMock()

        def get_object(bucket, key):
            if key.endswith('groups.json'):
                raise S3Error("slow down", error_code='SlowDown')
            return {}

        store.get_object.side_effect = get_object
        registry = CollectionBatchRegistry(max_concurrent_writes=2)
        registry.add(BUCKET, AssetType.USER, 'alice', {'assetId': 'alice'})
        registry.add(BUCKET, AssetType.GROUP, 'admins', {'assetId': 'admins'})

        with pytest.raises(CacheError) as raised:
            registry.flush(store)

        assert 'groups.json' in raised.value.message
        store.put_object.assert_called_once_with(BUCKET, 'assets/organization/users.json',
                                                 {'alice': {'assetId': 'alice'}})
        assert registry.pending_count == 0
