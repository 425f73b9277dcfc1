"""
Host Engine

Default ``AutomationEngine``: opens the transport to the external host,
reads plugin metadata, checks compatibility and loads plugin code through
the module sandbox. The protocol spoken over the transport is left to the
plugins and the ``data`` event.
"""

import asyncio
import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, List, Optional, Union

import yaml
from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import Version
from pydantic import ValidationError

from ..domain.interfaces import AutomationEngine
from ..domain.models import (
    CompatibilityResult,
    ConnectionOptions,
    PipeTransport,
    PluginMetadata,
    SocketTransport,
)
from ..framework.configuration import HostConfiguration
from ..framework.plugin_management.sandbox import SandboxContext, SandboxedModuleLoader
from ..infrastructure.exceptions import EngineStartError, PluginError, PluginLoadError

logger = logging.getLogger(__name__)

ENGINE_API_VERSION = "1.0.0"
METADATA_FILES = ("plugin.yaml", "plugin.yml", "package.json")
READ_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class LoadedPlugin:
    metadata: PluginMetadata
    path: Path
    module: ModuleType
    module_name: str


def plugin_module_name(plugin_name: str) -> str:
    return "plughost_plugin_" + re.sub(r"\W", "_", plugin_name)


class HostEngine(AutomationEngine):
    """Transport owner and plugin host."""

    def __init__(
        self,
        sandbox: SandboxContext,
        configuration: Optional[HostConfiguration] = None,
        loader: Optional[SandboxedModuleLoader] = None,
    ):
        super().__init__()
        self.sandbox = sandbox
        self.configuration = configuration or HostConfiguration()
        self.options: Optional[ConnectionOptions] = None
        self._loader = loader or SandboxedModuleLoader(sandbox)
        self._plugins: Dict[str, LoadedPlugin] = {}
        self._transports: List[asyncio.BaseTransport] = []
        self._reader_task: Optional[asyncio.Task] = None
        self._closed = False
        self._shut_down = False

    @property
    def loaded_plugins(self) -> Dict[str, LoadedPlugin]:
        return dict(self._plugins)

    # ------------------------------------------------------------------ transport

    async def start(self, options: ConnectionOptions) -> None:
        transport = options.transport
        if transport is None:
            raise EngineStartError(
                "No transport configured: supply input and output handles, "
                "or a host, port and password"
            )

        self.options = options
        try:
            if isinstance(transport, PipeTransport):
                reader = await self._open_pipes(transport)
            else:
                reader = await self._open_socket(transport)
        except EngineStartError:
            raise
        except (OSError, ValueError) as e:
            raise EngineStartError(
                f"Cannot open {transport.kind} transport: {e}",
                transport=transport.kind,
                cause=e,
            ) from e

        self._reader_task = asyncio.get_running_loop().create_task(self._watch_input(reader))
        logger.info(f"Engine started on {transport.kind} transport (engine API {ENGINE_API_VERSION})")

    async def _open_pipes(self, transport: PipeTransport) -> asyncio.StreamReader:
        loop = asyncio.get_running_loop()

        input_file = await loop.run_in_executor(None, _open_handle, transport.input_handle, "rb")
        reader = asyncio.StreamReader()
        read_transport, _ = await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader), input_file
        )
        self._transports.append(read_transport)

        output_file = await loop.run_in_executor(None, _open_handle, transport.output_handle, "wb")
        write_transport, _ = await loop.connect_write_pipe(asyncio.Protocol, output_file)
        self._transports.append(write_transport)
        return reader

    async def _open_socket(self, transport: SocketTransport) -> asyncio.StreamReader:
        # The password is not checked here; it travels in options for the plugins' protocol layer
        reader, writer = await asyncio.open_connection(transport.host, transport.port)
        self._transports.append(writer.transport)
        return reader

    async def _watch_input(self, reader: asyncio.StreamReader) -> None:
        try:
            while True:
                chunk = await reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    logger.info("Host closed the connection")
                    break
                self.emit("data", chunk)
        except OSError as e:
            logger.error(f"Error reading from host: {e}")
        except Exception as e:
            # A failing data listener is uncaught for the whole process, not just this task
            asyncio.get_running_loop().call_exception_handler({
                "message": "Unhandled exception in engine data listener",
                "exception": e,
                "task": asyncio.current_task(),
            })
            return
        self._signal_close()

    def _signal_close(self) -> None:
        if not self._closed:
            self._closed = True
            self.emit("close")

    def write(self, data: bytes) -> None:
        """Send raw bytes to the host."""
        if not self._transports:
            raise EngineStartError("Engine is not started")
        self._transports[-1].write(data)

    # ------------------------------------------------------------------ plugins

    def get_plugin_metadata(self, path: Union[str, Path]) -> PluginMetadata:
        directory = Path(path)
        metadata_file = next(
            (directory / name for name in METADATA_FILES if (directory / name).is_file()),
            None,
        )
        if metadata_file is None:
            raise PluginError(f"No plugin metadata found in {directory}", plugin_path=str(directory))

        try:
            with open(metadata_file, "r", encoding="utf-8") as f:
                raw = json.load(f) if metadata_file.suffix == ".json" else yaml.safe_load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise PluginError(
                f"Cannot read plugin metadata {metadata_file}: {e}",
                plugin_path=str(directory),
                cause=e,
            ) from e

        if not isinstance(raw, dict):
            raise PluginError(f"Invalid metadata format in {metadata_file}", plugin_path=str(directory))

        try:
            return PluginMetadata(**raw)
        except ValidationError as e:
            raise PluginError(
                f"Invalid plugin metadata in {metadata_file}: {e.error_count()} errors",
                plugin_path=str(directory),
                cause=e,
            ) from e

    def check_plugin_compatibility(self, metadata: PluginMetadata) -> CompatibilityResult:
        if not metadata.engine:
            return CompatibilityResult(
                compatible=True,
                message=f"Plugin '{metadata.name}' does not declare which engine versions it supports",
            )

        try:
            specifier = SpecifierSet(metadata.engine)
        except InvalidSpecifier:
            return CompatibilityResult(
                compatible=False,
                message=f"Plugin '{metadata.name}' declares an invalid engine requirement '{metadata.engine}'",
            )

        if Version(ENGINE_API_VERSION) in specifier:
            return CompatibilityResult(compatible=True)

        return CompatibilityResult(
            compatible=False,
            message=(
                f"Plugin '{metadata.name}' requires engine {metadata.engine}, "
                f"this engine is {ENGINE_API_VERSION}"
            ),
        )

    def load_plugin(self, path: Union[str, Path]) -> None:
        directory = Path(os.path.abspath(path))
        metadata = self.get_plugin_metadata(directory)

        if metadata.name in self._plugins:
            raise PluginLoadError(
                f"A plugin named '{metadata.name}' is already loaded from {self._plugins[metadata.name].path}",
                plugin_path=str(directory),
                plugin_name=metadata.name,
            )

        module_name = plugin_module_name(metadata.name)
        module = self._loader.load(module_name, directory / metadata.main)

        init = getattr(module, "init", None)
        if callable(init):
            try:
                init(self, self.configuration.plugin_config(metadata.name))
            except Exception as e:
                self._loader.unload(module_name)
                raise PluginLoadError(
                    f"Plugin '{metadata.name}' failed to initialise: {e}",
                    plugin_path=str(directory),
                    plugin_name=metadata.name,
                    cause=e,
                ) from e

        self._plugins[metadata.name] = LoadedPlugin(
            metadata=metadata, path=directory, module=module, module_name=module_name
        )
        logger.info(f"Plugin initialised: {metadata.name} v{metadata.version}")

    # ------------------------------------------------------------------ shutdown

    def shutdown(self) -> None:
        if self._shut_down:
            return
        self._shut_down = True

        for plugin in reversed(list(self._plugins.values())):
            hook = getattr(plugin.module, "shutdown", None)
            if callable(hook):
                try:
                    hook()
                except Exception as e:
                    logger.error(f"Error shutting down plugin '{plugin.metadata.name}': {e}", exc_info=True)

        if self._reader_task is not None and not self._reader_task.done():
            try:
                self._reader_task.cancel()
            except RuntimeError:
                pass  # loop already closed

        for transport in self._transports:
            try:
                transport.close()
            except RuntimeError:
                pass  # loop already closed
        self._transports.clear()
        logger.info("Engine shut down")


def _open_handle(handle: Union[int, str], mode: str) -> Any:
    if isinstance(handle, int):
        return os.fdopen(handle, mode, buffering=0)
    return open(handle, mode, buffering=0)
