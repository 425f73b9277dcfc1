"""
Framework Layer - bootstrap services

Configuration, connection option selection, plugin management and the
lifecycle orchestrator that ties them together.
"""

from .configuration import HostConfiguration, ConfigurationBuilder, load_configuration
from .connection import build_options, parse_handle, select_transport
from .lifecycle import (
    LifecycleOrchestrator,
    LifecycleState,
    CLOSE_GRACE_PERIOD,
    EXIT_OK,
    EXIT_UNCAUGHT_EXCEPTION,
    EXIT_INIT_FAILURE,
)

__all__ = [
    "HostConfiguration",
    "ConfigurationBuilder",
    "load_configuration",
    "build_options",
    "parse_handle",
    "select_transport",
    "LifecycleOrchestrator",
    "LifecycleState",
    "CLOSE_GRACE_PERIOD",
    "EXIT_OK",
    "EXIT_UNCAUGHT_EXCEPTION",
    "EXIT_INIT_FAILURE",
]
