"""
plughost - plugin host bootstrap

Discovers plugins in folders, picks the best loadable version of each and
runs them inside an automation engine connected to an external host over a
local pipe or an authenticated socket.
"""

__version__ = "0.1.0"

from .framework import LifecycleOrchestrator
from .framework.plugin_management import SandboxContext, PluginDirectoryScanner, VersionResolver

__all__ = [
    "LifecycleOrchestrator",
    "SandboxContext",
    "PluginDirectoryScanner",
    "VersionResolver",
]
