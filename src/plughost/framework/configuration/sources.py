"""
Places host configuration is read from.

Each source yields a plain mapping; ``ConfigurationBuilder`` merges them in
ascending ``priority`` order.
"""

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from ...infrastructure.exceptions import ConfigurationError

NESTING_SEPARATOR = "__"


class ConfigurationSource(ABC):
    priority: int = 0

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def load(self) -> Dict[str, Any]:
        """Return this source's settings as a (possibly nested) mapping."""


class YAMLConfigurationSource(ConfigurationSource):
    """Settings from a YAML file. An empty file contributes nothing."""

    def __init__(self, file_path: Union[str, Path], priority: int = 100):
        self.file_path = Path(file_path)
        self.priority = priority

    @property
    def name(self) -> str:
        return f"yaml:{self.file_path}"

    def load(self) -> Dict[str, Any]:
        path = str(self.file_path)
        if not self.file_path.is_file():
            raise ConfigurationError(f"No configuration file at {path}", config_path=path)

        try:
            text = self.file_path.read_text(encoding="utf-8")
            document = yaml.safe_load(text)
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file {path}: {e}", config_path=path, cause=e) from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Configuration file {path} is not valid YAML", config_path=path, cause=e) from e

        if document is None:
            return {}
        if not isinstance(document, dict):
            raise ConfigurationError(
                f"Configuration file {path} must hold a mapping, found {type(document).__name__}",
                config_path=path,
            )
        return document


class EnvironmentConfigurationSource(ConfigurationSource):
    """
    Settings from ``<PREFIX>...`` environment variables.

    ``PLUGHOST_LOGGING__LEVEL=DEBUG`` becomes ``{"logging": {"level": "DEBUG"}}``:
    the prefix is dropped, the rest lowercased and split on double underscores.
    """

    def __init__(
        self,
        prefix: str = "PLUGHOST_",
        priority: int = 200,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.prefix = prefix.upper()
        self.priority = priority
        self._environ = environ

    @property
    def name(self) -> str:
        return f"env:{self.prefix}*"

    def load(self) -> Dict[str, Any]:
        environ = os.environ if self._environ is None else self._environ
        settings: Dict[str, Any] = {}
        for variable in sorted(environ):
            if not variable.upper().startswith(self.prefix):
                continue
            keys = [k for k in variable[len(self.prefix):].lower().split(NESTING_SEPARATOR) if k]
            if keys:
                _assign(settings, keys, coerce_env_value(environ[variable]))
        return settings


def _assign(settings: Dict[str, Any], keys: List[str], value: Any) -> None:
    node = settings
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = node[key] = {}
        node = child
    node[keys[-1]] = value


def coerce_env_value(raw: str) -> Any:
    """``true``/``false`` become booleans, numbers become numbers, ``a, b`` becomes a list."""
    lowered = raw.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"

    for number in (int, float):
        try:
            return number(raw)
        except ValueError:
            continue

    if "," in raw:
        return [item.strip() for item in raw.split(",")]
    return raw
