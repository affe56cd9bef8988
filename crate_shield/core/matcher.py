"""Core vulnerability matching logic for CrateShield."""

import asyncio
from dataclasses import dataclass, field
from typing import AbstractSet, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from ..advisories.models import AdvisoryRecord
from ..utils.logging import get_logger
from ..utils.performance import PerformanceMonitor, benchmark
from .parsers.base import Dependency


class AdvisorySource(Protocol):
    """Anything that can look up advisories by package name."""

    def records_for(self, package_name: str) -> Sequence[AdvisoryRecord]:
        ...


@dataclass(frozen=True)
class Match:
    """A confirmed association between one dependency and one advisory."""

    dependency: Dependency
    advisory: AdvisoryRecord

    def __post_init__(self) -> None:
        assert self.dependency.name == self.advisory.package, (
            f"Match between {self.dependency} and advisory {self.advisory.id} "
            f"for package {self.advisory.package}"
        )

    @property
    def sort_key(self) -> tuple:
        return (self.dependency.name, self.dependency.version, self.advisory.id)


def sort_matches(matches: Iterable[Match]) -> Tuple[Match, ...]:
    """Return matches in canonical (name, version, advisory id) order."""
    return tuple(sorted(matches, key=lambda m: m.sort_key))


@dataclass(frozen=True)
class MatchResult:
    """Blocking matches plus informational findings, both canonically sorted."""

    matches: Tuple[Match, ...] = ()
    warnings: Tuple[Match, ...] = ()


@dataclass
class VulnerabilityMatcher:
    """Cross-references dependencies against advisories under filters.

    Args:
        ignore: Advisory ids to exclude
        target_arch: Only consider advisories that apply to this architecture
        target_os: Only consider advisories that apply to this OS
        include_withdrawn: Also match withdrawn advisories
    """

    ignore: AbstractSet[str] = frozenset()
    target_arch: Optional[str] = None
    target_os: Optional[str] = None
    include_withdrawn: bool = False
    performance_monitor: PerformanceMonitor = field(default_factory=PerformanceMonitor, repr=False)

    def __post_init__(self) -> None:
        self.ignore = frozenset(self.ignore)
        self.logger = get_logger("VulnerabilityMatcher")

    @benchmark
    def match(self, dependencies: Sequence[Dependency], database: AdvisorySource) -> MatchResult:
        """Match dependencies against the advisory database.

        Args:
            dependencies: Dependencies to check
            database: Loaded advisory database

        Returns:
            Sorted blocking matches and informational findings
        """
        with self.performance_monitor.measure("match") as metric:
            found: List[Match] = []
            for dependency in dependencies:
                found.extend(self._match_dependency(dependency, database))
            result = self._collect(found)
            metric.items = len(dependencies)
        return result

    async def match_async(self, dependencies: Sequence[Dependency], database: AdvisorySource) -> MatchResult:
        """Concurrent variant of ``match``; the output order is identical."""
        with self.performance_monitor.measure("match_async") as metric:
            results = await asyncio.gather(*[
                self._match_dependency_async(dependency, database)
                for dependency in dependencies
            ])
            result = self._collect(match for dependency_matches in results for match in dependency_matches)
            metric.items = len(dependencies)
        return result

    async def _match_dependency_async(self, dependency: Dependency, database: AdvisorySource) -> List[Match]:
        await asyncio.sleep(0)  # Yield control
        return self._match_dependency(dependency, database)

    def _collect(self, found: Iterable[Match]) -> MatchResult:
        """Dedup by (dependency, advisory id) and split off informational findings."""
        seen: Set[Tuple[Dependency, str]] = set()
        blocking: List[Match] = []
        informational: List[Match] = []

        for match in found:
            key = (match.dependency, match.advisory.id)
            if key in seen:
                continue
            seen.add(key)
            if match.advisory.is_informational:
                informational.append(match)
            else:
                blocking.append(match)

        return MatchResult(matches=sort_matches(blocking), warnings=sort_matches(informational))

    def _match_dependency(self, dependency: Dependency, database: AdvisorySource) -> List[Match]:
        """Match a single dependency against its package's advisories."""
        candidates = database.records_for(dependency.name)
        if candidates:
            self.logger.debug(f"Found {len(candidates)} advisories for {dependency}")

        matches = []
        for advisory in candidates:
            if self.is_affected(dependency, advisory):
                self.logger.debug(f"MATCH: {dependency} matches {advisory.id}")
                matches.append(Match(dependency=dependency, advisory=advisory))
        return matches

    def is_affected(self, dependency: Dependency, advisory: AdvisoryRecord) -> bool:
        """Apply every filter and the version test to one candidate."""
        if dependency.name != advisory.package:
            return False

        if advisory.is_withdrawn and not self.include_withdrawn:
            self.logger.debug(f"SKIP: {advisory.id} was withdrawn on {advisory.withdrawn}")
            return False

        if advisory.id in self.ignore:
            self.logger.debug(f"SKIP: {advisory.id} is ignored")
            return False

        if not advisory.applies_to_arch(self.target_arch):
            self.logger.debug(f"SKIP: {advisory.id} does not apply to arch {self.target_arch}")
            return False

        if not advisory.applies_to_os(self.target_os):
            self.logger.debug(f"SKIP: {advisory.id} does not apply to os {self.target_os}")
            return False

        return advisory.affected.contains(dependency.version)
