"""
Shared fixtures for plughost tests.
"""

import logging
from pathlib import Path
from typing import Callable

import pytest

from plughost.framework.plugin_management import SandboxContext

from .fixtures.mock_objects import FakeEngine, write_plugin


@pytest.fixture
def plugin_factory() -> Callable[..., Path]:
    return write_plugin


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def sandbox(tmp_path) -> SandboxContext:
    return SandboxContext(install_root=tmp_path / "install")


@pytest.fixture(autouse=True)
def restore_plughost_logger():
    """setup_logging() detaches the package logger from the root logger; undo that after each test."""
    package_logger = logging.getLogger("plughost")
    handlers = list(package_logger.handlers)
    level = package_logger.level
    propagate = package_logger.propagate
    yield
    for handler in package_logger.handlers:
        if handler not in handlers:
            handler.close()
    package_logger.handlers = handlers
    package_logger.setLevel(level)
    package_logger.propagate = propagate
