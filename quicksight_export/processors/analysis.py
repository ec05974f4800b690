"""
Analysis processor.
"""

from typing import Any, Dict

from quicksight_export.models.asset import AssetType
from quicksight_export.processors.base import BaseAssetProcessor, ProcessorCapabilities


class AnalysisProcessor(BaseAssetProcessor):
    asset_type = AssetType.ANALYSIS
    capabilities = ProcessorCapabilities(
        has_definition=True,
        has_permissions=True,
        has_tags=True,
    )

    def execute_describe(self, asset_id: str, asset_name: str, summary: Dict[str, Any]) -> Any:
        return self.gateway.describe(self.asset_type, asset_id)
