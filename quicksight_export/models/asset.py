"""
Data models for cached QuickSight assets.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict, Any, Union

from dateutil import parser as date_parser


class AssetType(Enum):
    """QuickSight asset kinds tracked by the export pipeline."""
    DASHBOARD = "dashboard"
    ANALYSIS = "analysis"
    DATASET = "dataset"
    DATASOURCE = "datasource"
    FOLDER = "folder"
    USER = "user"
    GROUP = "group"

    @property
    def plural(self) -> str:
        return _PLURALS[self]

    @property
    def is_collection(self) -> bool:
        """Folder, user and group assets share one document per kind."""
        return self in (AssetType.FOLDER, AssetType.USER, AssetType.GROUP)

    @property
    def has_reliable_timestamp(self) -> bool:
        """Membership and permission changes never bump a timestamp on these kinds."""
        return not self.is_collection

    @classmethod
    def from_value(cls, value: Union[str, "AssetType"]) -> "AssetType":
        if isinstance(value, AssetType):
            return value
        return cls(str(value).lower())


_PLURALS = {
    AssetType.DASHBOARD: "dashboards",
    AssetType.ANALYSIS: "analyses",
    AssetType.DATASET: "datasets",
    AssetType.DATASOURCE: "datasources",
    AssetType.FOLDER: "folders",
    AssetType.USER: "users",
    AssetType.GROUP: "groups",
}

# Order in which a full export walks the asset kinds
ALL_ASSET_TYPES: List[AssetType] = [
    AssetType.DASHBOARD,
    AssetType.ANALYSIS,
    AssetType.DATASET,
    AssetType.DATASOURCE,
    AssetType.FOLDER,
    AssetType.USER,
    AssetType.GROUP,
]


class AssetStatus(Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"


class EnrichmentStatus(Enum):
    SKELETON = "skeleton"
    PARTIAL = "partial"
    ENRICHED = "enriched"
    METADATA_UPDATE = "metadata-update"


class StorageType(Enum):
    INDIVIDUAL = "individual"
    COLLECTION = "collection"


class StatusFilter(Enum):
    """Filter applied when reading entries from the master cache."""
    ACTIVE = "active"
    ARCHIVED = "archived"
    ALL = "all"

    def matches(self, status: AssetStatus) -> bool:
        if self is StatusFilter.ALL:
            return True
        return status.value == self.value


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Normalise a timestamp from the API or the cache to an aware datetime.

    Naive values are assumed to be UTC. Empty or unparseable values yield None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        try:
            parsed = date_parser.isoparse(str(value))
        except (ValueError, OverflowError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheEntry:
    """One row of the per-type cache, describing a single tracked asset."""

    asset_id: str
    asset_type: AssetType
    asset_name: str = ""
    arn: str = ""
    status: AssetStatus = AssetStatus.ACTIVE
    enrichment_status: EnrichmentStatus = EnrichmentStatus.SKELETON
    created_time: Optional[datetime] = None
    last_updated_time: Optional[datetime] = None
    exported_at: Optional[datetime] = None
    enriched_at: Optional[datetime] = None
    enrichment_timestamps: Dict[str, str] = field(default_factory=dict)
    tags: List[Dict[str, str]] = field(default_factory=list)
    permissions: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    export_file_path: str = ""
    storage_type: StorageType = StorageType.INDIVIDUAL

    @property
    def is_active(self) -> bool:
        return self.status == AssetStatus.ACTIVE

    @property
    def is_archived(self) -> bool:
        return self.status == AssetStatus.ARCHIVED

    def to_dict(self) -> Dict[str, Any]:
        """Serialise using the persisted camelCase layout."""
        data = {
            'assetId': self.asset_id,
            'assetType': self.asset_type.value,
            'assetName': self.asset_name,
            'arn': self.arn,
            'status': self.status.value,
            'enrichmentStatus': self.enrichment_status.value,
            'createdTime': format_timestamp(self.created_time),
            'lastUpdatedTime': format_timestamp(self.last_updated_time),
            'exportedAt': format_timestamp(self.exported_at),
            'enrichmentTimestamps': dict(self.enrichment_timestamps),
            'tags': list(self.tags),
            'permissions': list(self.permissions),
            'metadata': dict(self.metadata),
            'exportFilePath': self.export_file_path,
            'storageType': self.storage_type.value,
        }
        if self.enriched_at is not None:
            data['enrichedAt'] = format_timestamp(self.enriched_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            asset_id=data['assetId'],
            asset_type=AssetType.from_value(data['assetType']),
            asset_name=data.get('assetName') or "",
            arn=data.get('arn') or "",
            status=AssetStatus(data.get('status', AssetStatus.ACTIVE.value)),
            enrichment_status=EnrichmentStatus(
                data.get('enrichmentStatus', EnrichmentStatus.SKELETON.value)
            ),
            created_time=parse_timestamp(data.get('createdTime')),
            last_updated_time=parse_timestamp(data.get('lastUpdatedTime')),
            exported_at=parse_timestamp(data.get('exportedAt')),
            enriched_at=parse_timestamp(data.get('enrichedAt')),
            enrichment_timestamps=data.get('enrichmentTimestamps') or {},
            tags=data.get('tags') or [],
            permissions=data.get('permissions') or [],
            metadata=data.get('metadata') or {},
            export_file_path=data.get('exportFilePath') or "",
            storage_type=StorageType(data.get('storageType', StorageType.INDIVIDUAL.value)),
        )


@dataclass
class MasterCache:
    """Read view merged from the per-type caches."""

    version: str = "2.0"
    last_updated: datetime = field(default_factory=utc_now)
    asset_counts: Dict[str, int] = field(default_factory=dict)
    entries: Dict[str, List[CacheEntry]] = field(default_factory=dict)

    def entries_for(self, asset_type: AssetType) -> List[CacheEntry]:
        return self.entries.get(asset_type.value, [])

    def add_entries(self, asset_type: AssetType, entries: List[CacheEntry]) -> None:
        self.entries[asset_type.value] = list(entries)
        self.asset_counts[asset_type.value] = len(entries)

    @property
    def total_assets(self) -> int:
        return sum(self.asset_counts.values())


# Identifier and display-name fields of the list summaries returned by QuickSight
SUMMARY_ID_FIELDS: Dict[AssetType, str] = {
    AssetType.DASHBOARD: 'DashboardId',
    AssetType.ANALYSIS: 'AnalysisId',
    AssetType.DATASET: 'DataSetId',
    AssetType.DATASOURCE: 'DataSourceId',
    AssetType.FOLDER: 'FolderId',
    AssetType.USER: 'UserName',
    AssetType.GROUP: 'GroupName',
}

SUMMARY_NAME_FIELDS: Dict[AssetType, str] = {
    AssetType.DASHBOARD: 'Name',
    AssetType.ANALYSIS: 'Name',
    AssetType.DATASET: 'Name',
    AssetType.DATASOURCE: 'Name',
    AssetType.FOLDER: 'Name',
    AssetType.USER: 'UserName',
    AssetType.GROUP: 'GroupName',
}


def _lower_first(name: str) -> str:
    return name[:1].lower() + name[1:]


def summary_value(summary: Dict[str, Any], field_name: str) -> Any:
    """Read a PascalCase field, falling back to its camelCase spelling."""
    if not summary:
        return None
    value = summary.get(field_name)
    if value is None:
        value = summary.get(_lower_first(field_name))
    return value


def summary_asset_id(asset_type: AssetType, summary: Dict[str, Any]) -> Optional[str]:
    value = summary_value(summary, SUMMARY_ID_FIELDS[asset_type])
    return str(value) if value else None


def summary_asset_name(asset_type: AssetType, summary: Dict[str, Any]) -> str:
    value = summary_value(summary, SUMMARY_NAME_FIELDS[asset_type])
    return str(value) if value else ""


def summary_last_modified(summary: Dict[str, Any]) -> Optional[datetime]:
    """LastUpdatedTime, or CreatedTime when the asset was never updated."""
    return parse_timestamp(
        summary_value(summary, 'LastUpdatedTime') or summary_value(summary, 'CreatedTime')
    )


def id_from_arn(arn: Optional[str]) -> Optional[str]:
    if not arn or '/' not in arn:
        return None
    return arn.rsplit('/', 1)[-1]
