"""
Configuration builder for creating HostConfiguration instances.
"""

import logging
from typing import Any, Dict, List, Optional, Union
from pathlib import Path

from pydantic import ValidationError

from .models import HostConfiguration
from .sources import ConfigurationSource, YAMLConfigurationSource, EnvironmentConfigurationSource
from ...infrastructure.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested mappings are merged key by key."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigurationBuilder:
    """
    Builder for creating HostConfiguration instances from multiple sources.

    Sources are merged in ascending priority, so a higher priority source
    overrides values from a lower one.
    """

    def __init__(self):
        self._sources: List[ConfigurationSource] = []
        self._source_path: Optional[str] = None

    def add_yaml_source(self, path: Union[str, Path], priority: int = 100) -> 'ConfigurationBuilder':
        """
        Add a YAML configuration source.

        Args:
            path: Path to the YAML configuration file
            priority: Priority of this source (higher = more important)
        """
        self._sources.append(YAMLConfigurationSource(path, priority))
        self._source_path = str(path)
        return self

    def add_environment_source(self, prefix: str = "PLUGHOST_", priority: int = 200) -> 'ConfigurationBuilder':
        """Add environment variable configuration source."""
        self._sources.append(EnvironmentConfigurationSource(prefix, priority))
        return self

    def add_source(self, source: ConfigurationSource) -> 'ConfigurationBuilder':
        """Add a custom configuration source."""
        self._sources.append(source)
        return self

    def build(self) -> HostConfiguration:
        """
        Load every source, merge them and validate the result.

        Raises:
            ConfigurationError: If a source cannot be read or the merged data is invalid
        """
        data: Dict[str, Any] = {}
        for source in sorted(self._sources, key=lambda s: s.priority):
            data = deep_merge(data, source.load())

        try:
            configuration = HostConfiguration(**{**data, "source_path": self._source_path})
        except ValidationError as e:
            errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            raise ConfigurationError(
                "Invalid configuration",
                config_path=self._source_path,
                validation_errors=errors,
                cause=e
            ) from e

        logger.debug(f"Configuration loaded from: {', '.join(s.name for s in self._sources)}")
        return configuration


def load_configuration(config_path: Optional[Union[str, Path]] = None, env_prefix: str = "PLUGHOST_") -> HostConfiguration:
    """Configuration from an optional YAML file overlaid with environment variables."""
    builder = ConfigurationBuilder()
    if config_path:
        builder.add_yaml_source(config_path)
    builder.add_environment_source(env_prefix)
    return builder.build()
