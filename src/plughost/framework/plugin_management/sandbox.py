"""
Module Sandbox

Restricts where plugin code may be resolved from. A ``SandboxContext`` holds the
allowed filesystem roots; every dynamic module load goes through a
``ModuleResolver`` that consults it before anything is imported.
"""

import importlib.util
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Iterable, List, Tuple, Union

from ...infrastructure.exceptions import PluginLoadError, SandboxViolationError

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

INSTALL_ROOT = Path(__file__).resolve().parents[2]
VENDOR_DIR_NAME = "vendor"


def _normalize(path: PathLike) -> str:
    return os.path.abspath(os.fspath(path))


class SandboxContext:
    """
    Allowed roots for dynamic module resolution.

    Starts with the bootstrap's install root and only ever grows. There is a
    single writer (the directory scanner, before any plugin is loaded) and any
    number of readers afterwards.
    """

    def __init__(self, install_root: PathLike = INSTALL_ROOT):
        self._allowed_roots: List[str] = []
        self.add_allowed_root(install_root)

    @property
    def allowed_roots(self) -> Tuple[str, ...]:
        return tuple(self._allowed_roots)

    def add_allowed_root(self, path: PathLike) -> None:
        """Allow modules under ``path``. Adding a root twice is a no-op."""
        root = _normalize(path)
        if root not in self._allowed_roots:
            self._allowed_roots.append(root)
            logger.debug(f"Sandbox root added: {root}")

    def is_allowed(self, path: PathLike) -> bool:
        candidate = os.fspath(path)
        return any(candidate.startswith(root) for root in self._allowed_roots)

    def filter_search_paths(self, candidate_paths: Iterable[PathLike]) -> List[PathLike]:
        """Keep the candidates lying under an allowed root, in their original order."""
        return [path for path in candidate_paths if self.is_allowed(path)]


def candidate_search_paths(origin: PathLike) -> List[str]:
    """
    Directories a module at ``origin`` could import its siblings and bundled
    dependencies from: its own directory first, then the ``vendor`` directory of
    that directory and of every ancestor, nearest first.
    """
    start = Path(_normalize(origin))
    if not start.is_dir():
        start = start.parent

    paths = [str(start)]
    for directory in (start, *start.parents):
        paths.append(str(directory / VENDOR_DIR_NAME))
    return paths


@dataclass(frozen=True)
class ResolvedModule:
    """A module path the sandbox accepted, with its permitted search paths."""
    path: Path
    search_paths: Tuple[str, ...]


@dataclass(frozen=True)
class SandboxDenial:
    """A module path the sandbox refused."""
    requested_path: str
    reason: str


ResolutionOutcome = Union[ResolvedModule, SandboxDenial]


class ModuleResolver:
    """Maps a requested module path to an allowed location, or a denial."""

    def resolve(self, requested_path: PathLike, context: SandboxContext) -> ResolutionOutcome:
        path = Path(_normalize(requested_path))
        if path.is_dir():
            path = path / "__init__.py"

        if not context.is_allowed(path):
            return SandboxDenial(
                requested_path=str(path),
                reason="path is outside every allowed sandbox root",
            )

        search_paths = tuple(
            candidate for candidate in context.filter_search_paths(candidate_search_paths(path))
            if os.path.isdir(candidate)
        )
        return ResolvedModule(path=path, search_paths=search_paths)


class SandboxedModuleLoader:
    """
    Imports plugin entry modules through a ``ModuleResolver``.

    The entry module is imported as a package whose submodule search locations
    are exactly the sandbox-approved search paths, so a plugin's relative
    imports never reach outside its allowed roots. ``sys.path`` is left alone.

    Sibling modules and the ``vendor/`` folder are therefore only reachable
    through package-relative imports (``from . import dep``). A bare
    ``import dep`` goes through the regular ``sys.path`` machinery and is not
    confined by the sandbox.
    """

    def __init__(self, context: SandboxContext, resolver: ModuleResolver = None):
        self.context = context
        self.resolver = resolver or ModuleResolver()

    def load(self, module_name: str, requested_path: PathLike) -> ModuleType:
        outcome = self.resolver.resolve(requested_path, self.context)
        if isinstance(outcome, SandboxDenial):
            logger.error(f"Refusing to load module '{module_name}' from {outcome.requested_path}: {outcome.reason}")
            raise SandboxViolationError(
                f"Module '{module_name}' at {outcome.requested_path}: {outcome.reason}",
                requested_path=outcome.requested_path,
            )

        if not outcome.path.is_file():
            raise PluginLoadError(
                f"Module file not found: {outcome.path}",
                plugin_path=str(outcome.path),
            )

        spec = importlib.util.spec_from_file_location(
            module_name,
            outcome.path,
            submodule_search_locations=list(outcome.search_paths),
        )
        if not spec or not spec.loader:
            raise PluginLoadError(
                f"Cannot create module spec for {outcome.path}",
                plugin_path=str(outcome.path),
            )

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            self.unload(module_name)
            raise PluginLoadError(
                f"Error executing module {outcome.path}: {e}",
                plugin_path=str(outcome.path),
                cause=e,
            ) from e

        logger.debug(
            f"Module loaded: {module_name}",
            extra={"module_path": str(outcome.path), "search_paths": list(outcome.search_paths)},
        )
        return module

    def unload(self, module_name: str) -> None:
        """Forget a module and its submodules."""
        prefix = module_name + "."
        for name in [n for n in sys.modules if n == module_name or n.startswith(prefix)]:
            del sys.modules[name]
