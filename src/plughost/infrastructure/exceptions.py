"""
Structured Exception Hierarchy

Every exception raised by plughost carries a stable ``error_code`` and a
``context`` dictionary, so a failure written to the JSON log can be
diagnosed without a debugger.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _context(base: Optional[Dict[str, Any]], **fields: Any) -> Dict[str, Any]:
    """Copy ``base`` and add the fields that carry a value."""
    context = dict(base or {})
    context.update({key: value for key, value in fields.items() if value})
    return context


class PlugHostException(Exception):
    """
    Base exception class for all plughost exceptions.

    Args:
        message: Human readable description
        error_code: Stable identifier; defaults to the class's ``default_code``
        context: Extra diagnostic values
        cause: The exception this one wraps, if any
    """

    default_code = "PLUGHOST_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.context = dict(context or {})
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(PlugHostException):
    """The configuration file or environment could not be turned into a HostConfiguration."""

    default_code = "CONFIG_ERROR"

    def __init__(
        self,
        message: str,
        config_path: Optional[str] = None,
        validation_errors: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            message,
            context=_context(context, config_path=config_path, validation_errors=validation_errors),
            cause=cause,
        )


class PluginError(PlugHostException):
    """A plugin folder has missing or invalid metadata."""

    default_code = "PLUGIN_ERROR"

    def __init__(
        self,
        message: str,
        plugin_path: Optional[str] = None,
        plugin_name: Optional[str] = None,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            message,
            error_code=error_code,
            context=_context(context, plugin_path=plugin_path, plugin_name=plugin_name),
            cause=cause,
        )


class PluginLoadError(PluginError):
    """One plugin version could not be loaded; older versions may still be tried."""

    default_code = "PLUGIN_LOAD_ERROR"


class SandboxViolationError(PluginLoadError):
    """A module path resolved outside every allowed sandbox root."""

    default_code = "SANDBOX_VIOLATION"

    def __init__(self, message: str, requested_path: Optional[str] = None, **kwargs: Any):
        kwargs["context"] = _context(kwargs.get("context"), requested_path=requested_path)
        super().__init__(message, **kwargs)


class EngineStartError(PlugHostException):
    """The automation engine could not open its transport."""

    default_code = "ENGINE_START_ERROR"

    def __init__(
        self,
        message: str,
        transport: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, context=_context(context, transport=transport), cause=cause)


class NoPluginsLoadedError(PlugHostException):
    """Resolution finished without a single plugin loaded; the engine has nothing to run."""

    default_code = "NO_PLUGINS_LOADED"

    def __init__(self, message: Optional[str] = None, attempted: int = 0, **kwargs: Any):
        context = dict(kwargs.pop("context", None) or {})
        context["attempted"] = attempted
        super().__init__(
            message or "Engine requires at least one plugin to function, zero were loaded.",
            context=context,
            **kwargs,
        )
