"""
Engine Layer - default automation engine implementation
"""

from .host_engine import HostEngine, LoadedPlugin, ENGINE_API_VERSION

__all__ = [
    "HostEngine",
    "LoadedPlugin",
    "ENGINE_API_VERSION",
]
