"""
Mock objects for plughost tests.
"""

from pathlib import Path
from typing import Dict, List, Optional, Set, Union

import yaml

from plughost.domain.interfaces import AutomationEngine
from plughost.domain.models import CompatibilityResult, ConnectionOptions, PluginMetadata


class FakeEngine(AutomationEngine):
    """
    In-memory engine double.

    Reads ``plugin.yaml`` like the real engine but records load attempts and
    fails loads for the paths listed in ``failing_paths``.
    """

    def __init__(
        self,
        failing_paths: Optional[Set[Path]] = None,
        incompatible: Optional[Dict[str, str]] = None,
        start_error: Optional[Exception] = None,
    ):
        super().__init__()
        self.failing_paths = {Path(p) for p in (failing_paths or set())}
        self.incompatible = incompatible or {}
        self.start_error = start_error
        self.load_attempts: List[Path] = []
        self.loaded: List[Path] = []
        self.started_with: Optional[ConnectionOptions] = None
        self.shutdown_calls = 0

    async def start(self, options: ConnectionOptions) -> None:
        if self.start_error:
            raise self.start_error
        self.started_with = options

    def get_plugin_metadata(self, path: Union[str, Path]) -> PluginMetadata:
        with open(Path(path) / "plugin.yaml", "r", encoding="utf-8") as f:
            return PluginMetadata(**yaml.safe_load(f))

    def check_plugin_compatibility(self, metadata: PluginMetadata) -> CompatibilityResult:
        if metadata.name in self.incompatible:
            return CompatibilityResult(compatible=False, message=self.incompatible[metadata.name])
        return CompatibilityResult(compatible=True)

    def load_plugin(self, path: Union[str, Path]) -> None:
        path = Path(path)
        self.load_attempts.append(path)
        if path in self.failing_paths:
            raise RuntimeError(f"boom in {path.name}")
        self.loaded.append(path)

    def shutdown(self) -> None:
        self.shutdown_calls += 1


def write_plugin(
    directory: Path,
    name: str,
    version: str = "1.0.0",
    main_source: Optional[str] = None,
    **extra,
) -> Path:
    """Create a plugin folder with ``plugin.yaml`` and, optionally, a ``main.py``."""
    directory.mkdir(parents=True, exist_ok=True)
    metadata = {"name": name, "version": version, **extra}
    (directory / "plugin.yaml").write_text(yaml.safe_dump(metadata), encoding="utf-8")
    if main_source is not None:
        (directory / metadata.get("main", "main.py")).write_text(main_source, encoding="utf-8")
    return directory
