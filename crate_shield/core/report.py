"""Deterministic audit reports and CI exit disposition."""

from dataclasses import dataclass
from enum import IntEnum
from itertools import groupby
from typing import Any, Iterable, Optional, Tuple

from .matcher import Match
from .parsers.base import Dependency


class ExitCode(IntEnum):
    CLEAN = 0
    VULNERABILITIES_FOUND = 1
    ERROR = 2


@dataclass(frozen=True)
class DependencyFindings:
    """All findings for one dependency, ordered by advisory id."""

    dependency: Dependency
    matches: Tuple[Match, ...]


@dataclass(frozen=True)
class ReportSummary:
    dependency_count: Optional[int]
    vulnerable_dependency_count: int
    vulnerability_count: int
    warning_count: int


@dataclass(frozen=True)
class Report:
    """Immutable audit outcome; renderers only read from it."""

    vulnerabilities: Tuple[DependencyFindings, ...]
    warnings: Tuple[DependencyFindings, ...]
    summary: ReportSummary
    database: Optional[Any] = None

    @property
    def matches(self) -> Tuple[Match, ...]:
        return tuple(match for group in self.vulnerabilities for match in group.matches)

    @property
    def warning_matches(self) -> Tuple[Match, ...]:
        return tuple(match for group in self.warnings for match in group.matches)

    @property
    def is_clean(self) -> bool:
        return not self.vulnerabilities


class ReportBuilder:
    """Aggregates matches into a report with a stable, diffable order."""

    @staticmethod
    def group(matches: Iterable[Match]) -> Tuple[DependencyFindings, ...]:
        """Group by dependency, sorted by (name, version); matches by advisory id.

        Duplicate (dependency, advisory id) pairs collapse into one.
        """
        unique = {(m.dependency, m.advisory.id): m for m in matches}
        ordered = sorted(unique.values(), key=lambda m: m.sort_key)

        return tuple(
            DependencyFindings(dependency=dependency, matches=tuple(group))
            for dependency, group in groupby(ordered, key=lambda m: m.dependency)
        )

    @classmethod
    def build(
        cls,
        matches: Iterable[Match],
        informational: Iterable[Match] = (),
        dependency_count: Optional[int] = None,
        database: Optional[Any] = None,
    ) -> Report:
        """Build a report from blocking matches and informational findings.

        Args:
            matches: Blocking matches, in any order
            informational: Unmaintained/notice findings, in any order
            dependency_count: Number of dependencies audited
            database: Database metadata to carry into rendering
        """
        vulnerabilities = cls.group(matches)
        warnings = cls.group(informational)

        summary = ReportSummary(
            dependency_count=dependency_count,
            vulnerable_dependency_count=len(vulnerabilities),
            vulnerability_count=sum(len(group.matches) for group in vulnerabilities),
            warning_count=sum(len(group.matches) for group in warnings),
        )
        return Report(
            vulnerabilities=vulnerabilities,
            warnings=warnings,
            summary=summary,
            database=database,
        )

    @staticmethod
    def exit_disposition(report: Report, deny_warnings: bool = False) -> ExitCode:
        """Clean iff there are no blocking matches.

        Informational findings only count when ``deny_warnings`` is set.
        """
        if report.vulnerabilities:
            return ExitCode.VULNERABILITIES_FOUND
        if deny_warnings and report.warnings:
            return ExitCode.VULNERABILITIES_FOUND
        return ExitCode.CLEAN
