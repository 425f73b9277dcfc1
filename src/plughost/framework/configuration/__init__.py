"""
Configuration Management System

Typed host configuration loaded from YAML files and environment variables.
"""

from .models import LoggingConfiguration, HostConfiguration

from .sources import (
    ConfigurationSource,
    YAMLConfigurationSource,
    EnvironmentConfigurationSource
)

from .builder import ConfigurationBuilder, load_configuration, deep_merge

__all__ = [
    'LoggingConfiguration',
    'HostConfiguration',
    'ConfigurationSource',
    'YAMLConfigurationSource',
    'EnvironmentConfigurationSource',
    'ConfigurationBuilder',
    'load_configuration',
    'deep_merge',
]
