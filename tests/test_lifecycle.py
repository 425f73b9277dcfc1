"""
Test Lifecycle Orchestrator

Tests for startup, plugin loading and exit codes.
"""

import asyncio
import logging
import os
import sys

import pytest

from plughost.domain.models import ConnectionOptions, PipeTransport
from plughost.engine import HostEngine
from plughost.framework import lifecycle
from plughost.framework.lifecycle import (
    EXIT_INIT_FAILURE,
    EXIT_OK,
    EXIT_UNCAUGHT_EXCEPTION,
    LifecycleOrchestrator,
    LifecycleState,
)
from plughost.infrastructure.exceptions import EngineStartError

from .fixtures.mock_objects import FakeEngine, write_plugin

OPTIONS = ConnectionOptions(transport=PipeTransport(input_handle=3, output_handle=4))


async def wait_for_state(orchestrator, state, timeout=2.0):
    async def poll():
        while orchestrator.state is not state:
            await asyncio.sleep(0.001)
    await asyncio.wait_for(poll(), timeout)


class TestLifecycleOrchestrator:
    """Test the orchestrator end to end against a fake engine."""

    @pytest.fixture
    def plugin_root(self, tmp_path):
        root = tmp_path / "plugins"
        write_plugin(root / "demo", "demo", "1.0.0")
        return root

    def make_orchestrator(self, engine, folders, sandbox, **kwargs):
        created = []

        def factory(context):
            created.append(context)
            return engine

        orchestrator = LifecycleOrchestrator(
            engine_factory=factory,
            options=OPTIONS,
            plugin_folders=folders,
            sandbox=sandbox,
            grace_period=0.01,
            register_atexit=False,
            **kwargs,
        )
        return orchestrator, created

    @pytest.mark.asyncio
    async def test_close_event_exits_cleanly(self, plugin_root, sandbox):
        """Test the engine's close event leads to exit code 0 after the grace period."""
        engine = FakeEngine()
        orchestrator, created = self.make_orchestrator(engine, [plugin_root], sandbox)

        task = asyncio.create_task(orchestrator.run())
        await wait_for_state(orchestrator, LifecycleState.RUNNING)

        assert created == [sandbox]
        assert engine.started_with is OPTIONS
        assert orchestrator.resolution.loaded_count == 1

        engine.emit("close")
        engine.emit("close")
        assert orchestrator.state is LifecycleState.CLOSING

        exit_code = await asyncio.wait_for(task, 2.0)

        assert exit_code == EXIT_OK
        assert orchestrator.state is LifecycleState.STOPPED
        assert orchestrator.exit_reason == "Engine close event"
        assert engine.shutdown_calls == 1

    @pytest.mark.asyncio
    async def test_start_failure_exits_with_init_code(self, plugin_root, sandbox, caplog):
        """Test an engine that fails to start ends the process with -3."""
        engine = FakeEngine(start_error=EngineStartError("cannot open pipe"))
        orchestrator, _ = self.make_orchestrator(engine, [plugin_root], sandbox)

        with caplog.at_level(logging.ERROR):
            exit_code = await asyncio.wait_for(orchestrator.run(), 2.0)

        assert exit_code == EXIT_INIT_FAILURE
        assert orchestrator.state is LifecycleState.FAILED
        assert "cannot open pipe" in orchestrator.exit_reason
        assert engine.load_attempts == []
        assert engine.shutdown_calls == 1
        assert "Exiting with code -3" in caplog.text

    @pytest.mark.asyncio
    async def test_zero_plugins_is_fatal(self, tmp_path, sandbox):
        """Test loading no plugin at all is an initialization failure."""
        empty = tmp_path / "empty"
        empty.mkdir()
        engine = FakeEngine()
        orchestrator, _ = self.make_orchestrator(engine, [empty], sandbox)

        exit_code = await asyncio.wait_for(orchestrator.run(), 2.0)

        assert exit_code == EXIT_INIT_FAILURE
        assert "at least one plugin" in orchestrator.exit_reason

    @pytest.mark.asyncio
    async def test_all_plugins_failing_is_fatal(self, plugin_root, sandbox):
        """Test failed loads count as zero loaded plugins."""
        engine = FakeEngine(failing_paths={plugin_root / "demo"})
        orchestrator, _ = self.make_orchestrator(engine, [plugin_root], sandbox)

        exit_code = await asyncio.wait_for(orchestrator.run(), 2.0)

        assert exit_code == EXIT_INIT_FAILURE
        assert engine.load_attempts == [plugin_root / "demo"]

    @pytest.mark.asyncio
    async def test_whitelist_can_exclude_everything(self, plugin_root, sandbox):
        """Test a whitelist that matches nothing loads nothing and fails startup."""
        engine = FakeEngine()
        orchestrator, _ = self.make_orchestrator(
            engine, [plugin_root], sandbox, whitelist_names={"unrelated"}
        )

        exit_code = await asyncio.wait_for(orchestrator.run(), 2.0)

        assert exit_code == EXIT_INIT_FAILURE
        assert engine.load_attempts == []

    @pytest.mark.asyncio
    async def test_uncaught_exception_exits_with_minus_one(self, plugin_root, sandbox):
        """Test an exception escaping a loop callback ends the process with -1."""
        engine = FakeEngine()
        orchestrator, _ = self.make_orchestrator(engine, [plugin_root], sandbox)

        task = asyncio.create_task(orchestrator.run())
        await wait_for_state(orchestrator, LifecycleState.RUNNING)

        def fail():
            raise RuntimeError("late failure")

        asyncio.get_running_loop().call_soon(fail)
        exit_code = await asyncio.wait_for(task, 2.0)

        assert exit_code == EXIT_UNCAUGHT_EXCEPTION
        assert "late failure" in orchestrator.exit_reason
        assert engine.shutdown_calls == 1

    @pytest.mark.asyncio
    async def test_only_first_stop_counts(self, plugin_root, sandbox):
        """Test later stop requests do not change the exit code."""
        engine = FakeEngine()
        orchestrator, _ = self.make_orchestrator(engine, [plugin_root], sandbox)

        task = asyncio.create_task(orchestrator.run())
        await wait_for_state(orchestrator, LifecycleState.RUNNING)
        orchestrator.stop(EXIT_OK, "first")
        orchestrator.stop(EXIT_UNCAUGHT_EXCEPTION, "second")

        assert await asyncio.wait_for(task, 2.0) == EXIT_OK
        assert orchestrator.exit_reason == "first"

    @pytest.mark.asyncio
    async def test_exception_handler_restored(self, plugin_root, sandbox):
        """Test the loop's previous exception handler is put back after run()."""
        loop = asyncio.get_running_loop()
        previous = loop.get_exception_handler()
        engine = FakeEngine()
        orchestrator, _ = self.make_orchestrator(engine, [plugin_root], sandbox)

        task = asyncio.create_task(orchestrator.run())
        await wait_for_state(orchestrator, LifecycleState.RUNNING)
        assert loop.get_exception_handler() is not previous
        orchestrator.stop(EXIT_OK, "done")
        await asyncio.wait_for(task, 2.0)

        assert loop.get_exception_handler() is previous


class TestShutdown:
    """Test engine shutdown behaviour."""

    def test_shutdown_is_idempotent(self, sandbox):
        """Test the engine is shut down at most once however often it is requested."""
        engine = FakeEngine()
        orchestrator = LifecycleOrchestrator(lambda s: engine, OPTIONS, [], sandbox=sandbox)
        orchestrator.engine = engine

        orchestrator.shutdown_engine()
        orchestrator.shutdown_engine()

        assert engine.shutdown_calls == 1

    def test_shutdown_without_engine(self, sandbox):
        """Test shutting down before the engine exists does nothing."""
        LifecycleOrchestrator(lambda s: FakeEngine(), OPTIONS, [], sandbox=sandbox).shutdown_engine()

    def test_shutdown_errors_are_logged(self, sandbox, caplog):
        """Test a failing engine shutdown is logged rather than raised."""
        class StuckEngine(FakeEngine):
            def shutdown(self):
                raise RuntimeError("stuck")

        engine = StuckEngine()
        orchestrator = LifecycleOrchestrator(lambda s: engine, OPTIONS, [], sandbox=sandbox)
        orchestrator.engine = engine

        orchestrator.shutdown_engine()

        assert "stuck" in caplog.text

    @pytest.mark.asyncio
    async def test_atexit_registration(self, tmp_path, sandbox, monkeypatch):
        """Test the shutdown hook is registered for interpreter exit."""
        registered = []
        monkeypatch.setattr(lifecycle.atexit, "register", registered.append)
        write_plugin(tmp_path / "demo", "demo")
        orchestrator = LifecycleOrchestrator(
            lambda s: FakeEngine(), OPTIONS, [tmp_path / "demo"], sandbox=sandbox, grace_period=0.01
        )

        task = asyncio.create_task(orchestrator.run())
        await wait_for_state(orchestrator, LifecycleState.RUNNING)
        orchestrator.stop(EXIT_OK, "done")
        await asyncio.wait_for(task, 2.0)

        assert registered == [orchestrator.shutdown_engine]


RAISING_LISTENER_PLUGIN = """
def init(engine, config):
    def on_data(chunk):
        raise ValueError("listener failure")
    engine.on("data", on_data)
"""


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="asyncio pipe transports need POSIX")
async def test_listener_exception_exits_with_minus_one(tmp_path, sandbox):
    """Test a plugin's data listener raising ends the process with -1 instead of hanging."""
    write_plugin(
        tmp_path / "plugins" / "faulty", "lifecycle-test-faulty", main_source=RAISING_LISTENER_PLUGIN
    )
    engine_in, host_out = os.pipe()
    host_in, engine_out = os.pipe()
    orchestrator = LifecycleOrchestrator(
        lambda context: HostEngine(context),
        ConnectionOptions(transport=PipeTransport(input_handle=engine_in, output_handle=engine_out)),
        [tmp_path / "plugins"],
        sandbox=sandbox,
        grace_period=0.01,
        register_atexit=False,
    )

    try:
        task = asyncio.create_task(orchestrator.run())
        await wait_for_state(orchestrator, LifecycleState.RUNNING)
        os.write(host_out, b"hello")

        exit_code = await asyncio.wait_for(task, 2.0)
    finally:
        os.close(host_out)
        os.close(host_in)
        sys.modules.pop("plughost_plugin_lifecycle_test_faulty", None)

    assert exit_code == EXIT_UNCAUGHT_EXCEPTION
    assert orchestrator.state is LifecycleState.FAILED
    assert "listener failure" in orchestrator.exit_reason
