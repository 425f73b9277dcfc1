"""
Plugin Descriptor Module

Defines data structures for discovered plugins.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from ...domain.models import PluginMetadata


@dataclass(frozen=True)
class PluginDescriptor:
    """A compatible plugin found on disk: where it lives and what it declares."""
    path: Path
    metadata: PluginMetadata

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def version(self) -> str:
        return self.metadata.version


# Plugin name -> candidates sharing that name
PluginGroups = Dict[str, List[PluginDescriptor]]
