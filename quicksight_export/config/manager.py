"""
Configuration management for QuickSight export operations.
"""

import json
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import boto3
from botocore.exceptions import NoCredentialsError

from ..models.config import ExportConfig
from ..models.exceptions import ConfigurationError, AWSCredentialsError


# (section, key in file, ExportConfig field)
_CONFIG_FIELDS = [
    ('aws', 'region', 'aws_region'),
    ('aws', 'account_id', 'aws_account_id'),
    ('aws', 'identity_region', 'identity_region'),
    ('aws', 'namespace', 'namespace'),
    ('aws', 'access_key_id', 'aws_access_key_id'),
    ('aws', 'secret_access_key', 'aws_secret_access_key'),
    ('aws', 'session_token', 'aws_session_token'),
    ('s3', 'bucket_name', 's3_bucket_name'),
    ('export', 'batch_size', 'batch_size'),
    ('export', 'max_concurrency', 'max_concurrency'),
    ('export', 'collection_flush_concurrency', 'collection_flush_concurrency'),
    ('export', 'progress_log_interval', 'progress_log_interval'),
    ('export', 'max_summary_errors', 'max_summary_errors'),
    ('retry', 'max_retries', 'retry_max_retries'),
    ('retry', 'base_delay_ms', 'retry_base_delay_ms'),
    ('retry', 'max_delay_ms', 'retry_max_delay_ms'),
    ('retry', 'jitter_factor', 'retry_jitter_factor'),
    ('jobs', 'max_log_entries', 'max_job_log_entries'),
    ('logging', 'level', 'logging_level'),
    ('logging', 'file_path', 'logging_file_path'),
]


class ConfigurationManager:
    """Manages configuration loading, validation, and AWS client initialization."""

    def __init__(self):
        self._config: Optional[ExportConfig] = None
        self._aws_session: Optional[boto3.Session] = None

    def load_config(self, config_path: str) -> ExportConfig:
        """
        Load configuration from YAML or JSON file.

        Args:
            config_path: Path to configuration file

        Returns:
            ExportConfig: Loaded and validated configuration

        Raises:
            ConfigurationError: If configuration is invalid or cannot be loaded
        """
        try:
            config_file = Path(config_path)

            if not config_file.exists():
                raise ConfigurationError(f"Configuration file not found: {config_path}")

            with open(config_file, 'r', encoding='utf-8') as f:
                if config_file.suffix.lower() in ['.yaml', '.yml']:
                    config_data = yaml.safe_load(f)
                elif config_file.suffix.lower() == '.json':
                    config_data = json.load(f)
                else:
                    raise ConfigurationError(
                        f"Unsupported configuration file format: {config_file.suffix}. "
                        "Supported formats: .yaml, .yml, .json"
                    )

            if not isinstance(config_data, dict):
                raise ConfigurationError("Configuration file must contain a mapping of sections")

            flat_config = self._flatten_config(config_data)
            self._config = ExportConfig(**flat_config)
            self.validate_config(self._config)

            return self._config

        except ConfigurationError:
            raise
        except yaml.YAMLError as e:
            raise ConfigurationError(f"YAML parsing error: {str(e)}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"JSON parsing error: {str(e)}")
        except TypeError as e:
            raise ConfigurationError(f"Configuration structure error: {str(e)}")
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration: {str(e)}")

    def _flatten_config(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Flatten nested configuration dictionary to match ExportConfig fields.

        Args:
            config_data: Nested configuration dictionary

        Returns:
            Dict[str, Any]: Flattened configuration dictionary
        """
        flat_config = {}

        for section, key, field_name in _CONFIG_FIELDS:
            flat_config[field_name] = (config_data.get(section) or {}).get(key)

        rate_limits = config_data.get('rate_limits') or {}
        general = rate_limits.get('general') or {}
        permissions = rate_limits.get('permissions') or {}
        flat_config['general_max_tokens'] = general.get('max_tokens')
        flat_config['general_refill_rate'] = general.get('refill_rate')
        flat_config['permissions_max_tokens'] = permissions.get('max_tokens')
        flat_config['permissions_refill_rate'] = permissions.get('refill_rate')

        # Remove None values
        return {k: v for k, v in flat_config.items() if v is not None}

    def validate_config(self, config: ExportConfig) -> bool:
        """
        Validate configuration settings.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        validation_errors = config.validate()
        if validation_errors:
            raise ConfigurationError(
                "Configuration validation failed:\n" +
                "\n".join(f"- {error}" for error in validation_errors),
                context={'errors': validation_errors}
            )
        return True

    def _resolve(self, config: Optional[ExportConfig]) -> ExportConfig:
        if config is None:
            if self._config is None:
                raise ConfigurationError("No configuration loaded")
            config = self._config
        return config

    def validate_aws_connectivity(self, config: Optional[ExportConfig] = None) -> bool:
        """
        Validate AWS connectivity and permissions.

        Raises:
            ConfigurationError: If configuration is not loaded
            AWSCredentialsError: If AWS connectivity fails
        """
        config = self._resolve(config)

        connectivity_errors = config.validate_aws_connectivity()
        if connectivity_errors:
            raise AWSCredentialsError(
                "AWS connectivity validation failed:\n" +
                "\n".join(f"- {error}" for error in connectivity_errors)
            )
        return True

    def create_aws_session(self, config: Optional[ExportConfig] = None,
                           region: Optional[str] = None) -> boto3.Session:
        """
        Create AWS session with configured credentials.

        Raises:
            ConfigurationError: If configuration is not loaded
            AWSCredentialsError: If session creation fails
        """
        config = self._resolve(config)

        try:
            self._aws_session = boto3.Session(**config.session_kwargs(region))
            return self._aws_session
        except NoCredentialsError as e:
            raise AWSCredentialsError(f"AWS credentials not found: {str(e)}")
        except Exception as e:
            raise AWSCredentialsError(f"Failed to create AWS session: {str(e)}")

    def get_quicksight_client(self, config: Optional[ExportConfig] = None, identity: bool = False):
        """
        Get configured QuickSight client.

        Args:
            config: Configuration to use (uses loaded config if None)
            identity: Target identity_region, used for user and group calls
        """
        config = self._resolve(config)
        region = (config.identity_region or config.aws_region) if identity else config.aws_region

        try:
            return self.create_aws_session(config, region).client('quicksight')
        except AWSCredentialsError:
            raise
        except Exception as e:
            raise AWSCredentialsError(f"Failed to create QuickSight client: {str(e)}")

    def get_s3_client(self, config: Optional[ExportConfig] = None):
        """Get configured S3 client."""
        session = self.create_aws_session(config)
        return session.client('s3')

    def create_sample_config(self, output_path: str) -> None:
        """
        Create a sample configuration file.

        Args:
            output_path: Path where to create the sample configuration
        """
        sample_config = {
            'aws': {
                'region': 'us-east-1',
                'account_id': '123456789012',
                'identity_region': 'us-east-1',  # Optional: separate region for user/group operations
                'namespace': 'default'
            },
            's3': {
                'bucket_name': 'my-quicksight-metadata'
            },
            'export': {
                'batch_size': 25,
                'max_concurrency': 10,
                'collection_flush_concurrency': 3,
                'progress_log_interval': 5,
                'max_summary_errors': 100
            },
            'rate_limits': {
                'general': {'max_tokens': 10, 'refill_rate': 10},
                'permissions': {'max_tokens': 2, 'refill_rate': 2}
            },
            'retry': {
                'max_retries': 5,
                'base_delay_ms': 500,
                'max_delay_ms': 10000,
                'jitter_factor': 0.3
            },
            'jobs': {
                'max_log_entries': 1000
            },
            'logging': {
                'level': 'INFO',
                'file_path': './logs/export.log'
            }
        }

        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        with open(output_file, 'w', encoding='utf-8') as f:
            yaml.dump(sample_config, f, default_flow_style=False, indent=2, sort_keys=False)

    @property
    def config(self) -> Optional[ExportConfig]:
        """Get the currently loaded configuration."""
        return self._config

    @property
    def aws_session(self) -> Optional[boto3.Session]:
        """Get the current AWS session."""
        return self._aws_session
