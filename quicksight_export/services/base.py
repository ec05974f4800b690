"""
Base class for services that talk to AWS.
"""

from typing import Any, Dict
import boto3

from quicksight_export.models.config import ExportConfig


class BaseAWSService:
    """Holds the configuration and a lazily created client per service."""

    def __init__(self, config: ExportConfig):
        self.config = config
        self._clients: Dict[str, Any] = {}

    def get_effective_region(self) -> str:
        """
        Get the effective region for user/group operations.

        Returns:
            str: identity_region if configured, otherwise aws_region
        """
        return self.config.identity_region or self.config.aws_region

    def get_client(self, service_name: str) -> Any:
        """Get or create an AWS service client."""
        if service_name not in self._clients:
            self._clients[service_name] = self._create_client(service_name)
        return self._clients[service_name]

    def _create_client(self, service_name: str) -> Any:
        """Create AWS service client. 'quicksight-identity' targets the identity region."""
        if service_name == 'quicksight-identity':
            session = boto3.Session(**self.config.session_kwargs(self.get_effective_region()))
            return session.client('quicksight')

        session = boto3.Session(**self.config.session_kwargs())
        return session.client(service_name)
