"""
Infrastructure Layer - cross-cutting error types
"""

from .exceptions import (
    PlugHostException,
    ConfigurationError,
    PluginError,
    PluginLoadError,
    SandboxViolationError,
    EngineStartError,
    NoPluginsLoadedError,
)

__all__ = [
    "PlugHostException",
    "ConfigurationError",
    "PluginError",
    "PluginLoadError",
    "SandboxViolationError",
    "EngineStartError",
    "NoPluginsLoadedError",
]
