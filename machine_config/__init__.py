"""
Configuration loading for the probe simulation.
"""

from .config_schema import get_config_schema, validate_config
from .settings_manager import SettingsManager, get_settings_manager

__all__ = [
    'get_config_schema',
    'validate_config',
    'SettingsManager',
    'get_settings_manager'
]
