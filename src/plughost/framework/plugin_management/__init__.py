"""
Plugin Management

Discovery, sandboxed loading and version resolution of engine plugins.
"""

from .plugin_descriptor import PluginDescriptor, PluginGroups
from .sandbox import (
    SandboxContext,
    ModuleResolver,
    ResolvedModule,
    SandboxDenial,
    SandboxedModuleLoader,
    candidate_search_paths,
)
from .plugin_discovery import PluginDirectoryScanner
from .version_resolver import (
    VersionResolver,
    ResolutionResult,
    LoadSuccess,
    LoadFailure,
    parse_version,
    is_valid_version,
    parse_whitelist,
)

__all__ = [
    'PluginDescriptor',
    'PluginGroups',
    'SandboxContext',
    'ModuleResolver',
    'ResolvedModule',
    'SandboxDenial',
    'SandboxedModuleLoader',
    'candidate_search_paths',
    'PluginDirectoryScanner',
    'VersionResolver',
    'ResolutionResult',
    'LoadSuccess',
    'LoadFailure',
    'parse_version',
    'is_valid_version',
    'parse_whitelist',
]
