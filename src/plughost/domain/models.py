"""
Core Domain Models

Value objects shared between the bootstrap and the automation engine:
plugin metadata, compatibility verdicts and connection options.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PluginMetadata(BaseModel):
    """
    Metadata a plugin declares about itself.

    Only ``name`` and ``version`` drive discovery and version resolution.
    The version is kept verbatim here; an unparseable version is tolerated
    and handled at resolution time.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    name: str = Field(..., min_length=1, description="Plugin name, compared verbatim")
    version: str = Field(..., description="Semantic version string")
    main: str = Field(default="main.py", description="Entry module, relative to the plugin folder")
    engine: Optional[str] = Field(
        default=None,
        description="Version specifier of the engine API the plugin supports (e.g. '>=1.0,<2')",
    )
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        """Reject names that are blank once surrounding whitespace is removed."""
        if not value.strip():
            raise ValueError("Plugin name must not be blank")
        return value

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, value: Any) -> str:
        """YAML reads ``1.0`` as a float; keep whatever was written as text."""
        if value is None:
            raise ValueError("Plugin version is required")
        return str(value)


@dataclass(frozen=True)
class CompatibilityResult:
    """Verdict returned by the engine's compatibility check."""
    compatible: bool
    message: Optional[str] = None


@dataclass(frozen=True)
class PipeTransport:
    """Local pipe transport. Pipes carry no credential."""
    input_handle: Union[int, str]
    output_handle: Union[int, str]

    @property
    def kind(self) -> str:
        return "pipe"


@dataclass(frozen=True)
class SocketTransport:
    """Authenticated network socket transport."""
    host: str
    port: int
    password: str = field(repr=False)

    @property
    def kind(self) -> str:
        return "socket"


Transport = Union[PipeTransport, SocketTransport]


@dataclass(frozen=True)
class ConnectionOptions:
    """
    Options handed to ``AutomationEngine.start``.

    Exactly one transport is active, or none when the raw arguments did not
    describe a usable one; the engine is responsible for rejecting the latter.
    """
    transport: Optional[Transport] = None
    engine_version: Optional[str] = None
    engine_path: Optional[str] = None
    engine_binary_path: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)

    @property
    def password(self) -> Optional[str]:
        if isinstance(self.transport, SocketTransport):
            return self.transport.password
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Flatten to the option names the engine understands, omitting absent values."""
        options: Dict[str, Any] = {}
        if isinstance(self.transport, PipeTransport):
            options["input_fd"] = self.transport.input_handle
            options["output_fd"] = self.transport.output_handle
        elif isinstance(self.transport, SocketTransport):
            options["port"] = self.transport.port
            options["hostname"] = self.transport.host
            options["password"] = self.transport.password

        for key in ("engine_version", "engine_path", "engine_binary_path"):
            value = getattr(self, key)
            if value is not None:
                options[key] = value

        options["config"] = dict(self.config)
        return options
