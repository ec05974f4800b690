"""
Asset processors, one per QuickSight asset kind.
"""

from typing import Dict, Optional, Type

from quicksight_export.models.asset import AssetType
from quicksight_export.services.cache_store import CacheStore
from quicksight_export.services.quicksight_gateway import QuickSightGateway

from .analysis import AnalysisProcessor
from .base import BaseAssetProcessor, ProcessorCapabilities, to_sdk_format
from .collection_registry import CollectionBatchRegistry, FlushResult
from .dashboard import DashboardProcessor
from .dataset import DatasetProcessor
from .datasource import DatasourceProcessor
from .organizational import FolderProcessor, GroupProcessor, OrganizationalProcessor, UserProcessor

PROCESSORS: Dict[AssetType, Type[BaseAssetProcessor]] = {
    AssetType.DASHBOARD: DashboardProcessor,
    AssetType.ANALYSIS: AnalysisProcessor,
    AssetType.DATASET: DatasetProcessor,
    AssetType.DATASOURCE: DatasourceProcessor,
    AssetType.FOLDER: FolderProcessor,
    AssetType.USER: UserProcessor,
    AssetType.GROUP: GroupProcessor,
}


def create_processor(asset_type: AssetType,
                     gateway: QuickSightGateway,
                     cache_store: CacheStore,
                     registry: Optional[CollectionBatchRegistry] = None) -> BaseAssetProcessor:
    return PROCESSORS[asset_type](gateway, cache_store, registry)


__all__ = [
    'AnalysisProcessor',
    'BaseAssetProcessor',
    'CollectionBatchRegistry',
    'DashboardProcessor',
    'DatasetProcessor',
    'DatasourceProcessor',
    'FlushResult',
    'FolderProcessor',
    'GroupProcessor',
    'OrganizationalProcessor',
    'PROCESSORS',
    'ProcessorCapabilities',
    'UserProcessor',
    'create_processor',
    'to_sdk_format',
]
