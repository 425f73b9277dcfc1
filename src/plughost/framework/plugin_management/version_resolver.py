"""
Version Resolution Module

Picks one version of every discovered plugin: the newest one that loads.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Union

import semver

from .plugin_descriptor import PluginDescriptor, PluginGroups
from ...domain.interfaces import AutomationEngine

logger = logging.getLogger(__name__)

SENTINEL_VERSION = "0.0.0"


@dataclass(frozen=True)
class LoadSuccess:
    descriptor: PluginDescriptor


@dataclass(frozen=True)
class LoadFailure:
    descriptor: PluginDescriptor
    message: str
    error: Optional[BaseException] = None


LoadResult = Union[LoadSuccess, LoadFailure]


@dataclass
class ResolutionResult:
    """Outcome of a resolution pass."""
    loaded: Dict[str, PluginDescriptor] = field(default_factory=dict)
    failures: List[LoadFailure] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def loaded_count(self) -> int:
        return len(self.loaded)


def clean_version(version: Any) -> Optional[str]:
    """Trim whitespace and one leading ``=`` or ``v``, as npm-style tooling writes versions."""
    if not isinstance(version, str):
        return None
    text = version.strip()
    if text.startswith("="):
        text = text[1:]
    if text.startswith("v"):
        text = text[1:]
    return text


def is_valid_version(version: Any) -> bool:
    cleaned = clean_version(version)
    return cleaned is not None and semver.Version.is_valid(cleaned)


def parse_version(version: Any) -> semver.Version:
    """Parse ``version`` as a semantic version; anything invalid sorts as the lowest version."""
    if is_valid_version(version):
        return semver.Version.parse(clean_version(version))
    return semver.Version.parse(SENTINEL_VERSION)


def parse_whitelist(raw: Optional[str]) -> Optional[Set[str]]:
    """Split a comma separated list of plugin names. ``None`` means no whitelist."""
    if raw is None:
        return None
    return {name.strip() for name in raw.split(",") if name.strip()}


class VersionResolver:
    """
    Loads at most one version per plugin name.

    Candidates sharing a name are tried newest first; the first one that
    loads wins and older ones are never attempted. A failing candidate only
    costs that candidate: the next older one is tried instead.
    """

    def __init__(self, engine: AutomationEngine):
        self._engine = engine

    def attempt_load(self, descriptor: PluginDescriptor) -> LoadResult:
        try:
            self._engine.load_plugin(descriptor.path)
        except Exception as e:
            return LoadFailure(descriptor=descriptor, message=str(e), error=e)
        return LoadSuccess(descriptor=descriptor)

    def group(
        self,
        descriptors: Iterable[PluginDescriptor],
        whitelist_names: Optional[Set[str]] = None,
        skipped: Optional[List[str]] = None,
    ) -> PluginGroups:
        """Group candidates by name, newest version first, dropping non-whitelisted names."""
        groups: PluginGroups = {}
        for descriptor in descriptors:
            if whitelist_names is not None and descriptor.name not in whitelist_names:
                logger.info(f"Skipping plugin '{descriptor.name}' at '{descriptor.path}': not whitelisted")
                if skipped is not None:
                    skipped.append(descriptor.name)
                continue
            groups.setdefault(descriptor.name, []).append(descriptor)

        for name, candidates in groups.items():
            for candidate in candidates:
                if not is_valid_version(candidate.version):
                    logger.warning(
                        f"Plugin '{name}' at '{candidate.path}' has invalid version "
                        f"'{candidate.version}', treating it as {SENTINEL_VERSION}"
                    )
            # sorted() is stable, also with reverse=True
            candidates.sort(key=lambda c: parse_version(c.version), reverse=True)

        return groups

    def resolve(
        self,
        descriptors: Iterable[PluginDescriptor],
        whitelist_names: Optional[Set[str]] = None,
    ) -> ResolutionResult:
        result = ResolutionResult()
        groups = self.group(descriptors, whitelist_names, result.skipped)

        for name, candidates in groups.items():
            for candidate in candidates:
                outcome = self.attempt_load(candidate)
                if isinstance(outcome, LoadSuccess):
                    result.loaded[name] = candidate
                    logger.info(f"Loaded plugin '{name}' v{candidate.version} from '{candidate.path}'")
                    break

                logger.error(f"Unable to load plugin at '{candidate.path}': {outcome.message}")
                result.failures.append(outcome)
            else:
                logger.error(f"No version of plugin '{name}' could be loaded")

        logger.info(
            f"Plugin resolution finished: {result.loaded_count} loaded",
            extra={"failed_attempts": len(result.failures), "skipped": len(result.skipped)},
        )
        return result
