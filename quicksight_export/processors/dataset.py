"""
Dataset processor, including uploaded-file datasets QuickSight will not describe.
"""

import logging
from typing import Any, Dict

from quicksight_export.models.asset import AssetType, summary_value
from quicksight_export.processors.base import FETCH_ERRORS, BaseAssetProcessor, ProcessorCapabilities
from quicksight_export.services.error_handler import get_error_code, is_unsupported_describe_error

logger = logging.getLogger(__name__)

# Returned when a dataset has never had refresh properties configured
REFRESH_PROPERTIES_NOT_SET_CODES = {'ResourceNotFoundException', 'InvalidParameterValueException'}


class DatasetProcessor(BaseAssetProcessor):
    """
    Datasets have no definition call; refresh schedules and refresh
    properties are exported as special operations.
    """

    asset_type = AssetType.DATASET
    capabilities = ProcessorCapabilities(
        has_definition=False,
        has_permissions=True,
        has_tags=True,
        has_special_operations=True,
    )

    def execute_describe(self, asset_id: str, asset_name: str, summary: Dict[str, Any]) -> Any:
        try:
            return self.gateway.describe(self.asset_type, asset_id)
        except Exception as e:
            if not is_unsupported_describe_error(e):
                raise
            logger.info(f"Dataset {asset_id} is an uploaded file; using list data instead of describe")
            return {
                'DataSetId': asset_id,
                'Arn': summary_value(summary, 'Arn'),
                'Name': asset_name,
                'ImportMode': summary_value(summary, 'ImportMode'),
                '_isUploadedFile': True,
                '_describeFailedError': str(e),
            }

    def execute_special_operations(self, asset_id: str, asset_name: str) -> Dict[str, Any]:
        special: Dict[str, Any] = {}

        try:
            special['refreshProperties'] = self.gateway.describe_refresh_properties(asset_id)
        except FETCH_ERRORS as e:
            if get_error_code(getattr(e, 'last_error', None) or e) in REFRESH_PROPERTIES_NOT_SET_CODES:
                logger.debug(f"Dataset {asset_id} has no refresh properties")
            else:
                logger.warning(f"Could not get refresh properties for dataset {asset_id}: {e}")

        try:
            special['refreshSchedules'] = self.gateway.list_refresh_schedules(asset_id)
        except FETCH_ERRORS as e:
            logger.warning(f"Could not get refresh schedules for dataset {asset_id}: {e}")

        return special
