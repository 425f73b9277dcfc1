"""
Domain Layer - engine contract and shared value objects
"""

from .interfaces import AutomationEngine
from .models import (
    PluginMetadata,
    CompatibilityResult,
    PipeTransport,
    SocketTransport,
    ConnectionOptions,
)

__all__ = [
    "AutomationEngine",
    "PluginMetadata",
    "CompatibilityResult",
    "PipeTransport",
    "SocketTransport",
    "ConnectionOptions",
]
