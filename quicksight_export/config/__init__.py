"""
Configuration loading for the QuickSight export tool.
"""

from .manager import ConfigurationManager

__all__ = ["ConfigurationManager"]
