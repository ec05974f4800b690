"""Unit tests for quicksight_export.processors.

Covers:
- export document assembly for individually stored assets
- capability gating and per-component failure handling
- metadata-only refresh reusing the previous document
- uploaded-file fallbacks for datasets and data sources
- organizational processors and the collection registry hand-off
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from quicksight_export.models.asset import AssetType
from quicksight_export.models.export_result import ProcessingStatus
from quicksight_export.models.processing import ProcessingContext, RefreshOptions
from quicksight_export.processors import (
    AnalysisProcessor,
    DashboardProcessor,
    DatasetProcessor,
    DatasourceProcessor,
    FolderProcessor,
    GroupProcessor,
    UserProcessor,
    create_processor,
    to_sdk_format,
)
from quicksight_export.processors.base import BaseAssetProcessor
from quicksight_export.processors.organizational import infer_member_type

UPLOADED_FILE_MESSAGE = 'The data set type is not supported through API yet'


@pytest.fixture
def store():
    fake = MagicMock()
    fake.bucket = 'test-bucket'
    fake.get_asset_document.return_value = None
    return fake


def _saved_document(store):
    store.put_asset_document.assert_called_once()
    return store.put_asset_document.call_args[0][2]


# ── Helpers ──────────────────────────────────────────────────────────────────────

class TestToSdkFormat:
    def test_keys_capitalised_and_datetimes_serialised(self):
        created = datetime(2024, 1, 2, tzinfo=timezone.utc)

        result = to_sdk_format({'dashboardId': 'd1', 'CreatedTime': created, 'name': 'Sales'})

        assert result == {'DashboardId': 'd1', 'CreatedTime': created.isoformat(), 'Name': 'Sales'}


class TestCreateProcessor:
    @pytest.mark.parametrize('asset_type, expected', [
        (AssetType.DASHBOARD, DashboardProcessor),
        (AssetType.ANALYSIS, AnalysisProcessor),
        (AssetType.DATASET, DatasetProcessor),
        (AssetType.DATASOURCE, DatasourceProcessor),
        (AssetType.FOLDER, FolderProcessor),
        (AssetType.USER, UserProcessor),
        (AssetType.GROUP, GroupProcessor),
    ])
    def test_one_processor_per_kind(self, asset_type, expected, gateway, store):
        processor = create_processor(asset_type, gateway, store)

        assert isinstance(processor, expected)
        assert processor.asset_type == asset_type

    def test_describe_hook_is_required(self, gateway, store):
        class NoDescribe(BaseAssetProcessor):
            asset_type = AssetType.DASHBOARD

        with pytest.raises(TypeError):
            NoDescribe(gateway, store)


# ── Individually stored assets ───────────────────────────────────────────────────

class TestDashboardProcessor:
    def test_full_export_document(self, gateway, store, make_summary):
        summary = make_summary(AssetType.DASHBOARD, 'd1', datetime(2024, 1, 5, tzinfo=timezone.utc),
                               name='Sales')

        result = DashboardProcessor(gateway, store).process_asset(summary, ProcessingContext())

        assert result.status == ProcessingStatus.SUCCESS
        assert result.details == {'definition': True, 'permissions': True, 'tags': True,
                                  'storageType': 'individual'}
        assert set(result.timing) == {'cacheCheck', 'dataFetching', 'saving', 'total'}

        document = _saved_document(store)
        assert document['assetId'] == 'd1'
        assert document['assetName'] == 'Sales'
        assert document['enrichmentStatus'] == 'enriched'
        assert set(document['apiResponses']) == {'list', 'describe', 'definition', 'permissions', 'tags'}
        assert document['apiResponses']['list']['data']['LastUpdatedTime'] == '2024-01-05T00:00:00+00:00'
        assert document['apiResponses']['tags']['data'] == [{'Key': 'team', 'Value': 'bi'}]
        assert set(document['enrichmentTimestamps']) == {'describe', 'definition', 'permissions', 'tags'}
        gateway.describe_tags.assert_called_once_with(summary['Arn'])

    def test_missing_id_returns_error_result(self, gateway, store):
        result = DashboardProcessor(gateway, store).process_asset({'Name': 'orphan'}, ProcessingContext())

        assert result.status == ProcessingStatus.ERROR
        assert result.asset_id == 'unknown'
        store.put_asset_document.assert_not_called()

    def test_describe_failure_fails_the_asset(self, gateway, store, make_summary, make_client_error):
        gateway.describe.side_effect = make_client_error('ResourceNotFoundException', 'gone')

        result = DashboardProcessor(gateway, store).process_asset(
            make_summary(AssetType.DASHBOARD, 'd1'), ProcessingContext()
        )

        assert result.status == ProcessingStatus.ERROR
        assert 'gone' in result.error
        store.put_asset_document.assert_not_called()

    def test_permission_and_tag_failures_yield_empty_lists(self, gateway, store, make_summary,
                                                           make_client_error):
        gateway.describe_permissions.side_effect = make_client_error('AccessDeniedException')
        gateway.describe_tags.side_effect = make_client_error('AccessDeniedException')

        result = DashboardProcessor(gateway, store).process_asset(
            make_summary(AssetType.DASHBOARD, 'd1'), ProcessingContext()
        )

        assert result.status == ProcessingStatus.SUCCESS
        document = _saved_document(store)
        assert document['apiResponses']['permissions']['data'] == []
        assert document['apiResponses']['tags']['data'] == []

    def test_bulk_context_replaces_api_calls(self, gateway, store, make_summary):
        context = ProcessingContext(
            bulk_permissions={'d1': [{'Principal': 'p', 'Actions': ['a']}]},
            bulk_tags={'d1': {'env': 'prod'}},
        )

        DashboardProcessor(gateway, store).process_asset(make_summary(AssetType.DASHBOARD, 'd1'), context)

        document = _saved_document(store)
        assert document['apiResponses']['permissions']['data'] == [{'Principal': 'p', 'Actions': ['a']}]
        assert document['apiResponses']['tags']['data'] == [{'Key': 'env', 'Value': 'prod'}]
        gateway.describe_permissions.assert_not_called()
        gateway.describe_tags.assert_not_called()

    def test_arn_built_when_summary_has_none(self, gateway, store):
        DashboardProcessor(gateway, store).process_asset({'DashboardId': 'd1', 'Name': 'x'}, ProcessingContext())

        gateway.describe_tags.assert_called_once_with(
            'arn:aws:quicksight:us-east-1:123456789012:dashboard/d1'
        )


class TestMetadataOnlyRefresh:
    PREVIOUS = {
        'assetId': 'a1',
        'apiResponses': {
            'describe': {'data': {'AnalysisId': 'a1', 'Name': 'old'}, 'timestamp': '2024-01-01T00:00:00+00:00'},
            'definition': {'data': {'Definition': {}}, 'timestamp': '2024-01-01T00:00:00+00:00'},
            'permissions': {'data': [], 'timestamp': '2024-01-01T00:00:00+00:00'},
            'tags': {'data': [{'Key': 'keep', 'Value': 'me'}], 'timestamp': '2024-01-01T00:00:00+00:00'},
        },
    }

    def test_permissions_only_reuses_previous_components(self, gateway, store, make_summary):
        store.get_asset_document.return_value = self.PREVIOUS
        context = ProcessingContext(refresh_options=RefreshOptions(definitions=False, permissions=True, tags=False))

        result = AnalysisProcessor(gateway, store).process_asset(make_summary(AssetType.ANALYSIS, 'a1'), context)

        assert result.status == ProcessingStatus.SUCCESS
        gateway.describe.assert_not_called()
        gateway.describe_definition.assert_not_called()
        gateway.describe_tags.assert_not_called()
        gateway.describe_permissions.assert_called_once_with(AssetType.ANALYSIS, 'a1')

        document = _saved_document(store)
        responses = document['apiResponses']
        assert document['enrichmentStatus'] == 'metadata-update'
        assert responses['describe'] == self.PREVIOUS['apiResponses']['describe']
        assert responses['definition'] == self.PREVIOUS['apiResponses']['definition']
        assert responses['tags'] == self.PREVIOUS['apiResponses']['tags']
        assert responses['permissions']['timestamp'] != '2024-01-01T00:00:00+00:00'

    def test_missing_previous_document_falls_back_to_describe(self, gateway, store, make_summary):
        context = ProcessingContext(refresh_options=RefreshOptions(definitions=False, permissions=False, tags=True))

        AnalysisProcessor(gateway, store).process_asset(make_summary(AssetType.ANALYSIS, 'a1'), context)

        gateway.describe.assert_called_once_with(AssetType.ANALYSIS, 'a1')
        document = _saved_document(store)
        assert 'definition' not in document['apiResponses']
        assert 'permissions' not in document['apiResponses']

    def test_full_refresh_never_reads_previous_document(self, gateway, store, make_summary):
        AnalysisProcessor(gateway, store).process_asset(make_summary(AssetType.ANALYSIS, 'a1'), ProcessingContext())

        store.get_asset_document.assert_not_called()


# ── Uploaded files ───────────────────────────────────────────────────────────────

class TestDatasetProcessor:
    def test_special_operations_included(self, gateway, store, make_summary):
        gateway.describe_refresh_properties.return_value = {'RefreshConfiguration': {}}
        gateway.list_refresh_schedules.return_value = [{'ScheduleId': 's1'}]

        result = DatasetProcessor(gateway, store).process_asset(
            make_summary(AssetType.DATASET, 'ds1'), ProcessingContext()
        )

        assert result.details['definition'] is False
        responses = _saved_document(store)['apiResponses']
        assert 'definition' not in responses
        assert responses['refreshProperties']['data'] == {'RefreshConfiguration': {}}
        assert responses['refreshSchedules']['data'] == [{'ScheduleId': 's1'}]
        gateway.describe_definition.assert_not_called()

    def test_uploaded_file_uses_synthetic_describe(self, gateway, store, make_summary, make_client_error):
        gateway.describe.side_effect = make_client_error('InvalidParameterValueException', UPLOADED_FILE_MESSAGE)

        result = DatasetProcessor(gateway, store).process_asset(
            make_summary(AssetType.DATASET, 'ds1', name='upload.csv', ImportMode='SPICE'), ProcessingContext()
        )

        assert result.status == ProcessingStatus.SUCCESS
        describe = _saved_document(store)['apiResponses']['describe']['data']
        assert describe['_isUploadedFile'] is True
        assert describe['Name'] == 'upload.csv'
        assert describe['ImportMode'] == 'SPICE'
        assert UPLOADED_FILE_MESSAGE in describe['_describeFailedError']

    def test_other_describe_errors_fail_the_dataset(self, gateway, store, make_summary, make_client_error):
        gateway.describe.side_effect = make_client_error('InvalidParameterValueException', 'bad id')

        result = DatasetProcessor(gateway, store).process_asset(
            make_summary(AssetType.DATASET, 'ds1'), ProcessingContext()
        )

        assert result.status == ProcessingStatus.ERROR

    def test_missing_refresh_properties_are_omitted(self, gateway, store, make_summary, make_client_error):
        gateway.describe_refresh_properties.side_effect = make_client_error('ResourceNotFoundException')

        DatasetProcessor(gateway, store).process_asset(make_summary(AssetType.DATASET, 'ds1'), ProcessingContext())

        responses = _saved_document(store)['apiResponses']
        assert 'refreshProperties' not in responses
        assert responses['refreshSchedules']['data'] == []


class TestDatasourceProcessor:
    def test_uploaded_file_becomes_file_datasource(self, gateway, store, make_summary, make_client_error):
        gateway.describe.side_effect = make_client_error(
            'UnsupportedOperationException', 'Describe is not supported through API for uploaded file sources'
        )

        DatasourceProcessor(gateway, store).process_asset(
            make_summary(AssetType.DATASOURCE, 'src1', name='sheet'), ProcessingContext()
        )

        describe = _saved_document(store)['apiResponses']['describe']['data']
        assert describe['Type'] == 'FILE'
        assert describe['DataSourceId'] == 'src1'
        assert describe['Arn'].endswith('datasource/src1')
        assert describe['_isUploadedFile'] is True


# ── Organizational assets ────────────────────────────────────────────────────────

class TestOrganizationalProcessors:
    def test_folder_goes_to_registry(self, gateway, store, make_summary):
        registry = MagicMock()
        gateway.describe.side_effect = None
        gateway.describe.return_value = {'FolderId': 'f1', 'FolderPath': []}
        gateway.list_folder_members.return_value = [
            {'MemberId': 'd1', 'MemberArn': 'arn:aws:quicksight:us-east-1:123456789012:dashboard/d1'},
            {'MemberId': 'x', 'MemberArn': 'arn:aws:quicksight:us-east-1:123456789012:theme/x'},
        ]

        result = FolderProcessor(gateway, store, registry).process_asset(
            make_summary(AssetType.FOLDER, 'f1'), ProcessingContext()
        )

        assert result.status == ProcessingStatus.SUCCESS
        assert result.details['storageType'] == 'collection'
        store.put_asset_document.assert_not_called()
        bucket, asset_type, asset_id, document = registry.add.call_args[0]
        assert (bucket, asset_type, asset_id) == ('test-bucket', AssetType.FOLDER, 'f1')
        members = document['apiResponses']['members']['data']
        assert members[0]['MemberType'] == 'DASHBOARD'
        assert 'MemberType' not in members[1]
        assert 'permissions' in document['apiResponses']
        assert 'tags' not in document['apiResponses']

    def test_folder_describe_failure_falls_back(self, gateway, store, make_summary, make_client_error):
        registry = MagicMock()
        gateway.describe.side_effect = make_client_error('AccessDeniedException')

        result = FolderProcessor(gateway, store, registry).process_asset(
            make_summary(AssetType.FOLDER, 'f1', name='Finance'), ProcessingContext()
        )

        assert result.status == ProcessingStatus.SUCCESS
        document = registry.add.call_args[0][3]
        assert document['apiResponses']['describe']['data'] == {'FolderId': 'f1', 'Name': 'Finance'}

    def test_collection_asset_without_registry_fails(self, gateway, store, make_summary):
        result = GroupProcessor(gateway, store).process_asset(
            make_summary(AssetType.GROUP, 'admins'), ProcessingContext()
        )

        assert result.status == ProcessingStatus.ERROR

    def test_user_describe_comes_from_summary(self, gateway, store, make_summary):
        registry = MagicMock()
        gateway.list_user_groups.return_value = [{'GroupName': 'admins'}]
        summary = make_summary(AssetType.USER, 'alice', Email='alice@example.com', Role='ADMIN')

        result = UserProcessor(gateway, store, registry).process_asset(summary, ProcessingContext())

        assert result.details['permissions'] is False
        assert result.details['tags'] is False
        gateway.describe.assert_not_called()
        document = registry.add.call_args[0][3]
        assert document['apiResponses']['describe']['data']['Email'] == 'alice@example.com'
        assert document['apiResponses']['groups']['data'] == [{'GroupName': 'admins'}]
        assert set(document['enrichmentTimestamps']) == {'describe'}

    def test_group_membership_failure_yields_no_members(self, gateway, store, make_summary, make_client_error):
        registry = MagicMock()
        gateway.list_group_memberships.side_effect = make_client_error('ResourceNotFoundException')

        result = GroupProcessor(gateway, store, registry).process_asset(
            make_summary(AssetType.GROUP, 'admins'), ProcessingContext()
        )

        assert result.status == ProcessingStatus.SUCCESS
        assert registry.add.call_args[0][3]['apiResponses']['members']['data'] == []


class TestInferMemberType:
    @pytest.mark.parametrize('arn, expected', [
        ('arn:aws:quicksight:us-east-1:1:dashboard/d', 'DASHBOARD'),
        ('arn:aws:quicksight:us-east-1:1:analysis/a', 'ANALYSIS'),
        ('arn:aws:quicksight:us-east-1:1:dataset/ds', 'DATASET'),
        ('arn:aws:quicksight:us-east-1:1:datasource/s', 'DATASOURCE'),
        ('arn:aws:quicksight:us-east-1:1:theme/t', None),
        (None, None),
    ])
    def test_member_type_from_arn(self, arn, expected):
        assert infer_member_type(arn) == expected
