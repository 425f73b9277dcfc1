"""
Plugin Discovery Module

Walks the configured plugin folders and asks the engine which of them hold
compatible plugins.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .plugin_descriptor import PluginDescriptor
from .sandbox import SandboxContext
from ...domain.interfaces import AutomationEngine

logger = logging.getLogger(__name__)

FolderArg = Union[str, os.PathLike]


class PluginDirectoryScanner:
    """
    Finds plugins in a set of folders.

    Each folder is first tried as a plugin itself; only when that yields
    nothing are its immediate child directories tried. Nothing deeper is
    searched. Every problem met while scanning is logged and skipped.
    """

    def __init__(self, engine: AutomationEngine, sandbox: SandboxContext):
        self._engine = engine
        self._sandbox = sandbox

    def scan(self, folders: Union[FolderArg, Sequence[FolderArg], None]) -> List[PluginDescriptor]:
        """Discover compatible plugins in ``folders``, in folder order."""
        if folders is None:
            folders = []
        elif isinstance(folders, (str, os.PathLike)):
            folders = [folders]

        all_plugins: List[PluginDescriptor] = []

        for folder in folders:
            try:
                found = self._list_plugins_in_directory(folder)
                if not found:
                    logger.warning(f"No viable plugins were found in '{folder}'")
                all_plugins.extend(found)
            except Exception as e:
                logger.error(f"Error processing plugin directory {folder}: {e}", exc_info=True)

        logger.info(f"Discovered {len(all_plugins)} plugins")
        return all_plugins

    def _list_plugins_in_directory(self, directory: FolderArg) -> List[PluginDescriptor]:
        # Relative folders are resolved against the current working directory
        absolute_path = Path(os.path.abspath(os.path.join(os.getcwd(), os.fspath(directory))))

        if not self._is_directory(absolute_path):
            logger.error(f"Error: specified plugin path '{absolute_path}' is not a directory")
            return []

        self._sandbox.add_allowed_root(absolute_path)

        plugins: List[PluginDescriptor] = []

        # First, try treating the directory as a plugin
        plugin = self._verify_plugin_at_path(absolute_path)
        if plugin:
            plugins.append(plugin)

        # Otherwise scan one level deep
        if not plugins:
            for child in sorted(absolute_path.iterdir()):
                if not self._is_directory(child):
                    continue
                plugin = self._verify_plugin_at_path(child)
                if plugin:
                    plugins.append(plugin)

        return plugins

    def _verify_plugin_at_path(self, absolute_path: Path) -> Optional[PluginDescriptor]:
        try:
            metadata = self._engine.get_plugin_metadata(absolute_path)
            compatibility = self._engine.check_plugin_compatibility(metadata)
        except Exception as e:
            # Not a plugin
            logger.debug(f"No plugin at '{absolute_path}': {e}")
            return None

        if compatibility.message:
            logger.warning(f"Potential problem with plugin at '{absolute_path}': {compatibility.message}")

        if not compatibility.compatible:
            return None

        logger.info(f"Plugin discovered: {metadata.name} v{metadata.version} at '{absolute_path}'")
        return PluginDescriptor(path=absolute_path, metadata=metadata)

    @staticmethod
    def _is_directory(path: Path) -> bool:
        try:
            return path.is_dir()
        except OSError as e:
            logger.error(f"Cannot stat '{path}': {e}")
            return False
