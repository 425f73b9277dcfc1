"""
Core Domain Interfaces

Defines the contract the bootstrap expects from the automation engine it drives.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Union

from .models import CompatibilityResult, ConnectionOptions, PluginMetadata

EngineListener = Callable[..., Any]


class AutomationEngine(ABC):
    """
    Interface of the automation engine that talks to the external host.

    The bootstrap only starts it, feeds it plugins and shuts it down; the
    protocol spoken over the transport belongs to the engine.
    """

    def __init__(self):
        self._listeners: Dict[str, List[EngineListener]] = {}

    @abstractmethod
    async def start(self, options: ConnectionOptions) -> None:
        """
        Connect to the external host.

        Args:
            options: Transport selection and passthrough hints

        Raises:
            Exception: Any failure to start; the caller treats it as fatal
        """
        pass

    @abstractmethod
    def get_plugin_metadata(self, path: Union[str, Path]) -> PluginMetadata:
        """
        Read the metadata of the plugin rooted at ``path``.

        Raises:
            Exception: When ``path`` does not hold a plugin
        """
        pass

    @abstractmethod
    def check_plugin_compatibility(self, metadata: PluginMetadata) -> CompatibilityResult:
        """Judge whether a plugin's declared requirements match this engine."""
        pass

    @abstractmethod
    def load_plugin(self, path: Union[str, Path]) -> None:
        """
        Load and initialise the plugin rooted at ``path``.

        Raises:
            Exception: When the plugin cannot be loaded
        """
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """Release the transport and loaded plugins. Must be safe to call twice."""
        pass

    def on(self, event: str, listener: EngineListener) -> None:
        """Register a listener for an engine event such as ``close``."""
        self._listeners.setdefault(event, []).append(listener)

    def remove_listener(self, event: str, listener: EngineListener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: str, *args: Any) -> None:
        """Invoke every listener registered for ``event`` in registration order."""
        for listener in list(self._listeners.get(event, [])):
            listener(*args)
