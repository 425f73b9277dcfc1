"""
Lifecycle Orchestrator

Starts the engine, loads plugins into it and decides when, and with which
exit code, the process ends.
"""

import asyncio
import atexit
import logging
import signal
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence, Set

from .plugin_management import (
    PluginDirectoryScanner,
    ResolutionResult,
    SandboxContext,
    VersionResolver,
)
from ..domain.interfaces import AutomationEngine
from ..domain.models import ConnectionOptions
from ..infrastructure.exceptions import NoPluginsLoadedError

logger = logging.getLogger(__name__)

# Seconds between the engine's close event and process exit, so pending pipe
# I/O can drain first.
CLOSE_GRACE_PERIOD = 1.0

EXIT_OK = 0
EXIT_UNCAUGHT_EXCEPTION = -1
EXIT_INIT_FAILURE = -3

EngineFactory = Callable[[SandboxContext], AutomationEngine]


class LifecycleState(Enum):
    UNINITIALIZED = "uninitialized"
    STARTING = "starting"
    RUNNING = "running"
    CLOSING = "closing"
    STOPPED = "stopped"
    FAILED = "failed"


TERMINAL_STATES = (LifecycleState.STOPPED, LifecycleState.FAILED)


class LifecycleOrchestrator:
    """
    Drives one engine from construction to process exit.

    ``run()`` returns the exit code once ``stop()`` has been called, either by
    the close grace timer, by a startup failure, or by an uncaught exception
    reported through the event loop.
    """

    def __init__(
        self,
        engine_factory: EngineFactory,
        options: ConnectionOptions,
        plugin_folders: Sequence[str],
        whitelist_names: Optional[Set[str]] = None,
        sandbox: Optional[SandboxContext] = None,
        grace_period: float = CLOSE_GRACE_PERIOD,
        register_atexit: bool = True,
        handle_signals: bool = False,
    ):
        self._engine_factory = engine_factory
        self.options = options
        self.plugin_folders = list(plugin_folders or [])
        self.whitelist_names = whitelist_names
        self.sandbox = sandbox or SandboxContext()
        self.grace_period = grace_period
        self._register_atexit = register_atexit
        self._handle_signals = handle_signals

        self.state = LifecycleState.UNINITIALIZED
        self.engine: Optional[AutomationEngine] = None
        self.resolution: Optional[ResolutionResult] = None
        self.exit_code: Optional[int] = None
        self.exit_reason: Optional[str] = None

        self._stopped: Optional[asyncio.Future] = None
        self._engine_shut_down = False

    async def run(self) -> int:
        loop = asyncio.get_running_loop()
        self._stopped = loop.create_future()
        previous_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._handle_loop_exception)
        if self._handle_signals:
            self._install_signal_handlers(loop)

        try:
            try:
                await self._start()
            except Exception as e:
                logger.error(f"Startup failed: {e}", exc_info=True)
                self.stop(EXIT_INIT_FAILURE, f"Engine failed to initialize: {e}")

            return await self._stopped
        finally:
            self.shutdown_engine()
            loop.set_exception_handler(previous_handler)

    async def _start(self) -> None:
        self._transition(LifecycleState.STARTING)
        self.engine = self._engine_factory(self.sandbox)
        if self._register_atexit:
            atexit.register(self.shutdown_engine)
        self.engine.on("close", self._on_engine_close)

        await self.engine.start(self.options)
        logger.info("Engine started, loading plugins")

        self.resolution = self.load_plugins()
        if self.state is LifecycleState.STARTING:
            self._transition(LifecycleState.RUNNING)

    def load_plugins(self) -> ResolutionResult:
        """
        Scan the plugin folders and load one version of every plugin.

        Raises:
            NoPluginsLoadedError: If not a single plugin could be loaded
        """
        scanner = PluginDirectoryScanner(self.engine, self.sandbox)
        descriptors = scanner.scan(self.plugin_folders)

        resolver = VersionResolver(self.engine)
        resolution = resolver.resolve(descriptors, self.whitelist_names)

        if resolution.loaded_count == 0:
            # Without any plugins the engine never does anything
            raise NoPluginsLoadedError(attempted=len(resolution.failures))

        logger.info(
            f"{resolution.loaded_count} plugins loaded",
            extra={"plugins": {name: d.version for name, d in resolution.loaded.items()}},
        )
        return resolution

    def stop(self, exit_code: int, reason: Optional[str] = None) -> None:
        """Record the exit code and let ``run()`` return. Only the first call counts."""
        if self._stopped is None or self._stopped.done():
            return

        reason = reason or "no reason given"
        logger.error(f"Exiting with code {exit_code}: {reason}")
        self.exit_code = exit_code
        self.exit_reason = reason
        self._transition(LifecycleState.STOPPED if exit_code == EXIT_OK else LifecycleState.FAILED)
        self._stopped.set_result(exit_code)

    def shutdown_engine(self) -> None:
        """Best-effort engine shutdown; safe to call any number of times."""
        if self.engine is None or self._engine_shut_down:
            return
        self._engine_shut_down = True
        try:
            self.engine.shutdown()
        except Exception as e:
            logger.error(f"Error during engine shutdown: {e}", exc_info=True)

    def _on_engine_close(self, *args: Any) -> None:
        if self.state in TERMINAL_STATES or self.state is LifecycleState.CLOSING:
            return
        self._transition(LifecycleState.CLOSING)
        asyncio.get_running_loop().call_later(
            self.grace_period, self.stop, EXIT_OK, "Engine close event"
        )

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        error = context.get("exception")
        if error is not None:
            logger.error(f"Uncaught exception: {error}", exc_info=error)
            self.stop(EXIT_UNCAUGHT_EXCEPTION, f"Uncaught exception: {error}")
        else:
            message = context.get("message", "unknown error")
            logger.error(f"Uncaught exception: {message}")
            self.stop(EXIT_UNCAUGHT_EXCEPTION, f"Uncaught exception: {message}")

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            reason = f"Received signal {sig.name}"
            try:
                loop.add_signal_handler(sig, self.stop, EXIT_OK, reason)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda *_, r=reason: loop.call_soon_threadsafe(self.stop, EXIT_OK, r))

    def _transition(self, state: LifecycleState) -> None:
        if self.state is not state:
            logger.debug(f"Lifecycle: {self.state.value} -> {state.value}")
            self.state = state
