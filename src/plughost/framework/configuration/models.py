"""
Configuration data models with validation.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class LoggingConfiguration(BaseModel):
    """Logging configuration with validation."""
    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    format: str = Field(default="pretty", pattern="^(pretty|json)$")
    file_output: bool = True

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v):
        """Accept ``debug`` as well as ``DEBUG``."""
        return v.upper() if isinstance(v, str) else v

    @field_validator("format", mode="before")
    @classmethod
    def normalize_format(cls, v):
        return v.lower() if isinstance(v, str) else v


class HostConfiguration(BaseModel):
    """
    Configuration handed to the engine at start.

    ``engine`` is opaque to the bootstrap; ``plugins`` maps a plugin name to
    the settings that plugin receives when it is initialised.
    """
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)
    engine: Dict[str, Any] = Field(default_factory=dict)
    plugins: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    source_path: Optional[str] = None

    def plugin_config(self, name: str) -> Dict[str, Any]:
        return dict(self.plugins.get(name, {}))

    def to_engine_dict(self) -> Dict[str, Any]:
        """The dictionary carried in ``ConnectionOptions.config``."""
        return self.model_dump(exclude={"source_path"})
