"""
Data source processor.
"""

import logging
from typing import Any, Dict

from quicksight_export.models.asset import AssetType, utc_now
from quicksight_export.processors.base import BaseAssetProcessor, ProcessorCapabilities
from quicksight_export.services.error_handler import is_unsupported_describe_error

logger = logging.getLogger(__name__)


class DatasourceProcessor(BaseAssetProcessor):
    asset_type = AssetType.DATASOURCE
    capabilities = ProcessorCapabilities(
        has_definition=False,
        has_permissions=True,
        has_tags=True,
    )

    def execute_describe(self, asset_id: str, asset_name: str, summary: Dict[str, Any]) -> Any:
        try:
            return self.gateway.describe(self.asset_type, asset_id)
        except Exception as e:
            if not is_unsupported_describe_error(e):
                raise
            logger.info(f"Treating data source {asset_id} ({asset_name}) as an uploaded file")
            now = utc_now().isoformat()
            return {
                'DataSourceId': asset_id,
                'Arn': self.resource_arn(asset_id, summary),
                'Name': asset_name or f"DataSource {asset_id}",
                'Type': 'FILE',
                'CreatedTime': now,
                'LastUpdatedTime': now,
                '_isUploadedFile': True,
            }
