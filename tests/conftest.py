"""Shared pytest fixtures for the QuickSight export tests.

- S3 is provided by moto's mock_aws; no real AWS calls are made
- The QuickSight gateway is a MagicMock configured per test
- Timestamps are timezone-aware UTC datetimes, as boto3 returns them
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from quicksight_export.models.asset import AssetType, SUMMARY_ID_FIELDS, SUMMARY_NAME_FIELDS
from quicksight_export.models.config import ExportConfig
from quicksight_export.services.cache_store import CacheStore
from quicksight_export.services.job_state import JobStateService

BUCKET = 'test-bucket'
REGION = 'us-east-1'
ACCOUNT_ID = '123456789012'


def ts(day: int, hour: int = 0) -> datetime:
    """A fixed UTC timestamp in January 2024."""
    return datetime(2024, 1, day, hour, tzinfo=timezone.utc)


# ── Configuration ────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never looks for a real profile."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', REGION)


@pytest.fixture
def config(tmp_path) -> ExportConfig:
    """A valid ExportConfig with small retry delays and logs under tmp_path."""
    return ExportConfig(
        s3_bucket_name=BUCKET,
        aws_region=REGION,
        aws_account_id=ACCOUNT_ID,
        batch_size=10,
        max_concurrency=4,
        retry_max_retries=2,
        retry_base_delay_ms=0,
        retry_max_delay_ms=0,
        logging_file_path=str(tmp_path / 'logs' / 'export.log'),
    )


# ── S3 backed services ───────────────────────────────────────────────────────────

@pytest.fixture
def s3_client():
    """moto S3 client with the export bucket already created."""
    with mock_aws():
        client = boto3.client('s3', region_name=REGION)
        client.create_bucket(Bucket=BUCKET)
        yield client


@pytest.fixture
def cache_store(config, s3_client) -> CacheStore:
    return CacheStore(config, s3_client=s3_client)


@pytest.fixture
def job_state(cache_store) -> JobStateService:
    return JobStateService(cache_store, max_log_entries=50)


# ── QuickSight fakes ─────────────────────────────────────────────────────────────

@pytest.fixture
def gateway(config) -> MagicMock:
    """QuickSight gateway double returning empty components by default."""
    fake = MagicMock()
    fake.config = config
    fake.api_call_count = 0
    fake.describe.side_effect = lambda asset_type, asset_id: {'Id': asset_id}
    fake.describe_definition.return_value = {'Definition': {'Sheets': [{'SheetId': 's1'}]}}
    fake.describe_permissions.return_value = [
        {'Principal': f'arn:aws:quicksight:{REGION}:{ACCOUNT_ID}:user/default/alice',
         'Actions': ['quicksight:DescribeDashboard']}
    ]
    fake.describe_tags.return_value = [{'Key': 'team', 'Value': 'bi'}]
    fake.list_folder_members.return_value = []
    fake.list_group_memberships.return_value = []
    fake.list_user_groups.return_value = []
    fake.list_refresh_schedules.return_value = []
    fake.describe_refresh_properties.return_value = {}
    return fake


@pytest.fixture
def make_summary():
    """Factory for QuickSight list summaries of any asset kind."""

    def _make(asset_type: AssetType, asset_id: str, updated: Optional[datetime] = None,
              name: Optional[str] = None, **extra) -> Dict[str, Any]:
        summary: Dict[str, Any] = {
            SUMMARY_ID_FIELDS[asset_type]: asset_id,
            SUMMARY_NAME_FIELDS[asset_type]: name or asset_id,
            'Arn': f'arn:aws:quicksight:{REGION}:{ACCOUNT_ID}:{asset_type.value}/{asset_id}',
            'CreatedTime': ts(1),
        }
        if updated is not None:
            summary['LastUpdatedTime'] = updated
        summary.update(extra)
        return summary

    return _make


@pytest.fixture
def make_client_error():
    """Factory for botocore ClientError instances."""

    def _make(code: str, message: str = '', status: int = 400,
              operation: str = 'DescribeDashboard') -> ClientError:
        return ClientError(
            {'Error': {'Code': code, 'Message': message},
             'ResponseMetadata': {'HTTPStatusCode': status}},
            operation,
        )

    return _make
