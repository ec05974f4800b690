"""
Rate limited, retrying access to the QuickSight control-plane API.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from quicksight_export.models.asset import AssetType
from quicksight_export.models.config import ExportConfig
from quicksight_export.services.base import BaseAWSService
from quicksight_export.services.error_handler import RetryPolicy, with_retry
from quicksight_export.services.rate_limiter import TokenBucketRateLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetApi:
    """boto3 operation names and response keys for one asset kind."""

    id_param: str
    list_operation: str
    list_key: str
    describe_operation: str
    describe_key: str
    permissions_operation: Optional[str] = None
    definition_operation: Optional[str] = None
    namespaced: bool = False


ASSET_APIS: Dict[AssetType, AssetApi] = {
    AssetType.DASHBOARD: AssetApi(
        'DashboardId', 'list_dashboards', 'DashboardSummaryList',
        'describe_dashboard', 'Dashboard',
        permissions_operation='describe_dashboard_permissions',
        definition_operation='describe_dashboard_definition',
    ),
    AssetType.ANALYSIS: AssetApi(
        'AnalysisId', 'list_analyses', 'AnalysisSummaryList',
        'describe_analysis', 'Analysis',
        permissions_operation='describe_analysis_permissions',
        definition_operation='describe_analysis_definition',
    ),
    AssetType.DATASET: AssetApi(
        'DataSetId', 'list_data_sets', 'DataSetSummaries',
        'describe_data_set', 'DataSet',
        permissions_operation='describe_data_set_permissions',
    ),
    AssetType.DATASOURCE: AssetApi(
        'DataSourceId', 'list_data_sources', 'DataSources',
        'describe_data_source', 'DataSource',
        permissions_operation='describe_data_source_permissions',
    ),
    AssetType.FOLDER: AssetApi(
        'FolderId', 'list_folders', 'FolderSummaryList',
        'describe_folder', 'Folder',
        permissions_operation='describe_folder_permissions',
    ),
    AssetType.USER: AssetApi(
        'UserName', 'list_users', 'UserList',
        'describe_user', 'User',
        namespaced=True,
    ),
    AssetType.GROUP: AssetApi(
        'GroupName', 'list_groups', 'GroupList',
        'describe_group', 'Group',
        namespaced=True,
    ),
}


@dataclass
class ListResult:
    items: List[Dict[str, Any]] = field(default_factory=list)
    api_call_count: int = 0


class QuickSightGateway(BaseAWSService):
    """
    Thin adapter over the boto3 QuickSight client.

    Every request first takes a token from the general bucket (permission
    reads use the permissions bucket) and is wrapped in with_retry, so
    throttling and transient failures are absorbed here. User and group calls
    go to the identity region client.
    """

    def __init__(self,
                 config: ExportConfig,
                 general_limiter: TokenBucketRateLimiter,
                 permissions_limiter: TokenBucketRateLimiter,
                 retry_policy: Optional[RetryPolicy] = None,
                 quicksight_client: Any = None,
                 identity_client: Any = None):
        super().__init__(config)
        self.general_limiter = general_limiter
        self.permissions_limiter = permissions_limiter
        self.retry_policy = retry_policy or RetryPolicy.from_config(config)
        if quicksight_client is not None:
            self._clients['quicksight'] = quicksight_client
            self._clients['quicksight-identity'] = identity_client or quicksight_client
        self._counter_lock = threading.Lock()
        self._api_calls = 0

    @property
    def api_call_count(self) -> int:
        with self._counter_lock:
            return self._api_calls

    def _client_for(self, asset_type: Optional[AssetType]) -> Any:
        if asset_type in (AssetType.USER, AssetType.GROUP):
            return self.get_client('quicksight-identity')
        return self.get_client('quicksight')

    def _call(self, operation: str, asset_type: Optional[AssetType] = None,
              limiter: Optional[TokenBucketRateLimiter] = None,
              account_scoped: bool = True, **params) -> Dict[str, Any]:
        client = self._client_for(asset_type)
        limiter = limiter or self.general_limiter
        if account_scoped:
            params.setdefault('AwsAccountId', self.config.aws_account_id)

        def invoke():
            limiter.acquire()
            with self._counter_lock:
                self._api_calls += 1
            return getattr(client, operation)(**params)

        return with_retry(invoke, self.retry_policy, operation_name=operation)

    def _id_params(self, asset_type: AssetType, asset_id: str) -> Dict[str, str]:
        api = ASSET_APIS[asset_type]
        params = {api.id_param: asset_id}
        if api.namespaced:
            params['Namespace'] = self.config.namespace
        return params

    def _paginate(self, operation: str, result_key: str, asset_type: Optional[AssetType] = None,
                  **params) -> ListResult:
        """Follow NextToken until the listing is exhausted."""
        result = ListResult()
        next_token = None

        while True:
            if next_token:
                params['NextToken'] = next_token
            response = self._call(operation, asset_type, **params)
            result.api_call_count += 1
            result.items.extend(response.get(result_key, []))

            next_token = response.get('NextToken')
            if not next_token:
                break

        return result

    def list_all(self, asset_type: AssetType) -> ListResult:
        """List every asset of one kind."""
        api = ASSET_APIS[asset_type]
        params: Dict[str, Any] = {'MaxResults': 100}
        if api.namespaced:
            params['Namespace'] = self.config.namespace

        result = self._paginate(api.list_operation, api.list_key, asset_type, **params)
        logger.info(
            f"Listed {len(result.items)} {asset_type.plural} in {result.api_call_count} API calls",
            extra={'context': {'asset_type': asset_type.value, 'count': len(result.items)}}
        )
        return result

    def describe(self, asset_type: AssetType, asset_id: str) -> Dict[str, Any]:
        api = ASSET_APIS[asset_type]
        response = self._call(api.describe_operation, asset_type, **self._id_params(asset_type, asset_id))
        return response.get(api.describe_key, {})

    def describe_definition(self, asset_type: AssetType, asset_id: str) -> Dict[str, Any]:
        api = ASSET_APIS[asset_type]
        if not api.definition_operation:
            raise ValueError(f"{asset_type.value} assets have no definition")
        response = self._call(api.definition_operation, asset_type, **self._id_params(asset_type, asset_id))
        return {k: v for k, v in response.items() if k not in ('ResponseMetadata', 'Status', 'RequestId')}

    def describe_permissions(self, asset_type: AssetType, asset_id: str) -> List[Dict[str, Any]]:
        api = ASSET_APIS[asset_type]
        if not api.permissions_operation:
            raise ValueError(f"{asset_type.value} assets have no resource permissions")
        response = self._call(
            api.permissions_operation, asset_type, limiter=self.permissions_limiter,
            **self._id_params(asset_type, asset_id)
        )
        return response.get('Permissions', [])

    def describe_tags(self, resource_arn: str) -> List[Dict[str, str]]:
        response = self._call('list_tags_for_resource', account_scoped=False, ResourceArn=resource_arn)
        return response.get('Tags', [])

    def list_folder_members(self, folder_id: str) -> List[Dict[str, Any]]:
        return self._paginate(
            'list_folder_members', 'FolderMemberList', AssetType.FOLDER, FolderId=folder_id
        ).items

    def list_group_memberships(self, group_name: str) -> List[Dict[str, Any]]:
        return self._paginate(
            'list_group_memberships', 'GroupMemberList', AssetType.GROUP,
            GroupName=group_name, Namespace=self.config.namespace
        ).items

    def list_user_groups(self, user_name: str) -> List[Dict[str, Any]]:
        return self._paginate(
            'list_user_groups', 'GroupList', AssetType.USER,
            UserName=user_name, Namespace=self.config.namespace
        ).items

    def list_refresh_schedules(self, dataset_id: str) -> List[Dict[str, Any]]:
        response = self._call('list_refresh_schedules', AssetType.DATASET, DataSetId=dataset_id)
        return response.get('RefreshSchedules', [])

    def describe_refresh_properties(self, dataset_id: str) -> Dict[str, Any]:
        response = self._call(
            'describe_data_set_refresh_properties', AssetType.DATASET, DataSetId=dataset_id
        )
        return response.get('DataSetRefreshProperties', {})
