"""
Build cache entries from persisted export documents.
"""

import logging
from typing import Any, Dict, List, Optional

from quicksight_export.models.asset import (
    AssetType, AssetStatus, CacheEntry, EnrichmentStatus, StorageType,
    id_from_arn, parse_timestamp, summary_asset_id, summary_asset_name, summary_last_modified,
    summary_value
)

logger = logging.getLogger(__name__)


def _response_data(document: Dict[str, Any], key: str) -> Any:
    section = (document.get('apiResponses') or {}).get(key)
    if not isinstance(section, dict):
        return None
    return section.get('data')


def transform_tags(tags: Optional[List[Dict[str, Any]]]) -> List[Dict[str, str]]:
    """[{Key, Value}] from the API to [{key, value}] for the cache."""
    result = []
    for tag in tags or []:
        key = tag.get('Key', tag.get('key'))
        if key is None:
            continue
        result.append({'key': key, 'value': tag.get('Value', tag.get('value', ''))})
    return result


def determine_principal_type(principal: str) -> str:
    if ':user/' in principal:
        return 'USER'
    if ':group/' in principal:
        return 'GROUP'
    if ':namespace/' in principal:
        return 'NAMESPACE'
    return 'PUBLIC'


def transform_permissions(permissions: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """[{Principal, Actions}] from the API to [{principal, principalType, actions}]."""
    result = []
    for permission in permissions or []:
        principal = permission.get('Principal') or permission.get('principal')
        if not principal:
            continue
        result.append({
            'principal': principal,
            'principalType': determine_principal_type(principal),
            'actions': list(permission.get('Actions') or permission.get('actions') or []),
        })
    return result


def _dataset_fields(describe: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
    fields = []
    for column in describe.get('OutputColumns') or []:
        name = column.get('Name')
        fields.append({
            'fieldId': column.get('Id') or name,
            'fieldName': name,
            'dataType': column.get('Type'),
            'description': column.get('Description', ''),
        })

    calculated = []
    for table in (describe.get('LogicalTableMap') or {}).values():
        for transform in table.get('DataTransforms') or []:
            operation = transform.get('CreateColumnsOperation')
            if not operation:
                continue
            for column in operation.get('Columns') or []:
                calculated.append({
                    'fieldId': column.get('ColumnId') or column.get('ColumnName'),
                    'fieldName': column.get('ColumnName'),
                    'expression': column.get('Expression'),
                })
    return {'fields': fields, 'calculatedFields': calculated}


def _dataset_lineage(describe: Dict[str, Any]) -> Dict[str, List[str]]:
    datasource_ids = set()
    for table in (describe.get('PhysicalTableMap') or {}).values():
        for source in table.values():
            if isinstance(source, dict) and source.get('DataSourceArn'):
                datasource_ids.add(id_from_arn(source['DataSourceArn']))

    dataset_ids = set()
    for table in (describe.get('LogicalTableMap') or {}).values():
        arn = (table.get('Source') or {}).get('DataSetArn')
        if arn:
            dataset_ids.add(id_from_arn(arn))

    return {
        'datasourceIds': sorted(i for i in datasource_ids if i),
        'datasetIds': sorted(i for i in dataset_ids if i),
    }


def extract_asset_metadata(asset_type: AssetType, document: Dict[str, Any]) -> Dict[str, Any]:
    """Per-kind attributes kept on the cache entry for search, lineage and field indexes."""
    describe = _response_data(document, 'describe') or {}
    definition = _response_data(document, 'definition') or {}
    metadata: Dict[str, Any] = {}

    if asset_type == AssetType.DASHBOARD:
        version = describe.get('Version') or {}
        metadata['versionNumber'] = version.get('VersionNumber')
        metadata['sheetCount'] = len((definition.get('Definition') or {}).get('Sheets') or [])
        metadata['lineageData'] = {
            'sourceAnalysisArn': version.get('SourceEntityArn'),
            'datasetIds': [i for i in (id_from_arn(a) for a in version.get('DataSetArns') or []) if i],
        }

    elif asset_type == AssetType.ANALYSIS:
        metadata['sheetCount'] = len((definition.get('Definition') or {}).get('Sheets') or [])
        metadata['lineageData'] = {
            'datasetIds': [i for i in (id_from_arn(a) for a in describe.get('DataSetArns') or []) if i],
        }

    elif asset_type == AssetType.DATASET:
        field_data = _dataset_fields(describe)
        metadata.update(field_data)
        metadata['fieldCount'] = len(field_data['fields']) + len(field_data['calculatedFields'])
        metadata['importMode'] = describe.get('ImportMode')
        metadata['isUploadedFile'] = bool(describe.get('_isUploadedFile'))
        metadata['lineageData'] = _dataset_lineage(describe)
        schedules = _response_data(document, 'refreshSchedules')
        if isinstance(schedules, list):
            metadata['refreshScheduleCount'] = len(schedules)

    elif asset_type == AssetType.DATASOURCE:
        metadata['sourceType'] = describe.get('Type')
        metadata['sourceStatus'] = describe.get('Status')
        metadata['isUploadedFile'] = bool(describe.get('_isUploadedFile'))

    elif asset_type == AssetType.FOLDER:
        metadata['folderType'] = describe.get('FolderType')
        metadata['parentFolderIds'] = [
            i for i in (id_from_arn(a) for a in describe.get('FolderPath') or []) if i
        ]
        members = _response_data(document, 'members')
        metadata['memberCount'] = len(members) if isinstance(members, list) else 0

    elif asset_type == AssetType.GROUP:
        metadata['description'] = describe.get('Description')
        members = _response_data(document, 'members')
        metadata['memberCount'] = len(members) if isinstance(members, list) else 0

    elif asset_type == AssetType.USER:
        summary = _response_data(document, 'list') or {}
        metadata['email'] = summary_value(summary, 'Email')
        metadata['role'] = summary_value(summary, 'Role')
        metadata['active'] = summary_value(summary, 'Active')
        metadata['identityType'] = summary_value(summary, 'IdentityType')
        metadata['principalId'] = summary_value(summary, 'PrincipalId')
        groups = _response_data(document, 'groups')
        metadata['groupCount'] = len(groups) if isinstance(groups, list) else 0

    return metadata


def derive_enrichment_status(document: Dict[str, Any]) -> EnrichmentStatus:
    stored = document.get('enrichmentStatus')
    if stored:
        try:
            return EnrichmentStatus(stored)
        except ValueError:
            logger.warning(f"Unknown enrichment status '{stored}' in export document")

    responses = document.get('apiResponses') or {}
    if 'describe' not in responses:
        return EnrichmentStatus.SKELETON
    if any(k in responses for k in ('definition', 'permissions', 'tags')):
        return EnrichmentStatus.ENRICHED
    return EnrichmentStatus.PARTIAL


def build_cache_entry(asset_type: AssetType,
                      document: Dict[str, Any],
                      status: AssetStatus,
                      export_file_path: str,
                      fallback_id: Optional[str] = None,
                      existing: Optional[CacheEntry] = None) -> Optional[CacheEntry]:
    """
    Turn one export document into a CacheEntry.

    Returns None when no asset ID can be determined. enrichedAt is carried over
    from the existing entry for metadata-only updates.
    """
    summary = _response_data(document, 'list') or {}
    describe = _response_data(document, 'describe') or {}

    asset_id = document.get('assetId') or summary_asset_id(asset_type, summary) or fallback_id
    if not asset_id:
        return None

    asset_name = (
        summary_asset_name(asset_type, summary)
        or summary_asset_name(asset_type, describe)
        or document.get('assetName')
        or asset_id
    )
    enrichment_status = derive_enrichment_status(document)
    list_section = (document.get('apiResponses') or {}).get('list') or {}

    enriched_at = None
    if enrichment_status == EnrichmentStatus.ENRICHED:
        enriched_at = parse_timestamp(list_section.get('timestamp'))
    elif existing is not None:
        enriched_at = existing.enriched_at

    metadata = extract_asset_metadata(asset_type, document)
    if status == AssetStatus.ARCHIVED and document.get('archivedMetadata'):
        metadata['archived'] = document['archivedMetadata']

    return CacheEntry(
        asset_id=asset_id,
        asset_type=asset_type,
        asset_name=asset_name,
        arn=summary_value(summary, 'Arn') or summary_value(describe, 'Arn') or '',
        status=status,
        enrichment_status=enrichment_status,
        created_time=parse_timestamp(summary_value(summary, 'CreatedTime')),
        last_updated_time=summary_last_modified(summary),
        exported_at=parse_timestamp(list_section.get('timestamp')),
        enriched_at=enriched_at,
        enrichment_timestamps=dict(document.get('enrichmentTimestamps') or {}),
        tags=transform_tags(_response_data(document, 'tags')),
        permissions=transform_permissions(_response_data(document, 'permissions')),
        metadata=metadata,
        export_file_path=export_file_path,
        storage_type=StorageType.COLLECTION if asset_type.is_collection else StorageType.INDIVIDUAL,
    )
