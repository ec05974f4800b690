"""
Processors for organizational assets: folders, groups and users.

All three are stored as collections and have no reliable last-modified
signal, so every listed item is processed on every run.
"""

import logging
from typing import Any, Dict, Optional

from quicksight_export.models.asset import AssetType
from quicksight_export.processors.base import FETCH_ERRORS, BaseAssetProcessor, ProcessorCapabilities

logger = logging.getLogger(__name__)

_MEMBER_TYPES = (
    (':dashboard/', 'DASHBOARD'),
    (':analysis/', 'ANALYSIS'),
    (':dataset/', 'DATASET'),
    (':datasource/', 'DATASOURCE'),
    (':user/', 'USER'),
    (':group/', 'GROUP'),
)


def infer_member_type(arn: Optional[str]) -> Optional[str]:
    """Member type from a folder member ARN, or None if unrecognised."""
    for marker, member_type in _MEMBER_TYPES:
        if arn and marker in arn:
            return member_type
    return None


class OrganizationalProcessor(BaseAssetProcessor):
    """Describe data comes from the list summary; no permissions or tags."""

    capabilities = ProcessorCapabilities(
        has_definition=False,
        has_permissions=False,
        has_tags=False,
        has_special_operations=True,
    )

    def execute_describe(self, asset_id: str, asset_name: str, summary: Dict[str, Any]) -> Any:
        return dict(summary)


class FolderProcessor(OrganizationalProcessor):
    asset_type = AssetType.FOLDER
    capabilities = ProcessorCapabilities(
        has_definition=False,
        has_permissions=True,
        has_tags=False,
        has_special_operations=True,
    )

    def execute_describe(self, asset_id: str, asset_name: str, summary: Dict[str, Any]) -> Any:
        # Describe adds FolderPath, which the list summary lacks
        try:
            return self.gateway.describe(self.asset_type, asset_id) or {'FolderId': asset_id, 'Name': asset_name}
        except FETCH_ERRORS as e:
            logger.warning(f"Failed to describe folder {asset_id}: {e}")
            return {'FolderId': asset_id, 'Name': asset_name}

    def execute_special_operations(self, asset_id: str, asset_name: str) -> Dict[str, Any]:
        try:
            members = self.gateway.list_folder_members(asset_id)
        except FETCH_ERRORS as e:
            logger.warning(f"Failed to get members for folder {asset_id}: {e}")
            return {'members': []}

        for member in members:
            if not member.get('MemberType'):
                member_type = infer_member_type(member.get('MemberArn'))
                if member_type:
                    member['MemberType'] = member_type
        return {'members': members}


class GroupProcessor(OrganizationalProcessor):
    asset_type = AssetType.GROUP

    def execute_special_operations(self, asset_id: str, asset_name: str) -> Dict[str, Any]:
        try:
            return {'members': self.gateway.list_group_memberships(asset_id)}
        except FETCH_ERRORS as e:
            logger.warning(f"Failed to get members for group {asset_id}: {e}")
            return {'members': []}


class UserProcessor(OrganizationalProcessor):
    asset_type = AssetType.USER

    def execute_special_operations(self, asset_id: str, asset_name: str) -> Dict[str, Any]:
        try:
            return {'groups': self.gateway.list_user_groups(asset_id)}
        except FETCH_ERRORS as e:
            logger.warning(f"Failed to get groups for user {asset_id}: {e}")
            return {'groups': []}
