"""The audit pipeline: fetch, load, parse, match, build."""

import datetime
from dataclasses import dataclass
from typing import Any, List, Optional, TextIO

from .advisories.database import AdvisoryDatabase
from .config.settings import AuditConfig
from .core.matcher import VulnerabilityMatcher
from .core.parsers import CargoLockParser, Dependency
from .core.report import ExitCode, Report, ReportBuilder
from .utils.logging import get_logger
from .utils.performance import PerformanceMonitor


@dataclass(frozen=True)
class AuditResult:
    report: Report
    exit_code: ExitCode
    database_stats: dict


class Auditor:
    """Runs one audit with an explicitly passed configuration.

    Every fatal condition raises a ``CrateShieldError`` subclass before the
    matcher runs; mapping errors to an exit code is left to the caller.
    """

    def __init__(
        self,
        config: AuditConfig,
        transport: Optional[Any] = None,
        stdin: Optional[TextIO] = None,
        now: Optional[datetime.datetime] = None,
        performance_monitor: Optional[PerformanceMonitor] = None,
    ) -> None:
        """Initialize the auditor.

        Args:
            config: Resolved audit configuration
            transport: Git transport for the advisory mirror
            stdin: Stream read when the lockfile path is ``-``
            now: Reference time for the freshness check
            performance_monitor: Optional monitor for stage timings
        """
        self.config = config
        self.transport = transport
        self.stdin = stdin
        self.now = now
        self.performance_monitor = performance_monitor or PerformanceMonitor()
        self.logger = get_logger("Auditor")
        self.parser = CargoLockParser()

    def open_database(self) -> AdvisoryDatabase:
        """Open, freshness-check and load the advisory database."""
        config = self.config
        database = AdvisoryDatabase.open(
            config.database_path,
            url=config.database_url,
            fetch=not config.no_fetch,
            transport=self.transport,
            performance_monitor=self.performance_monitor,
        )
        database.check_freshness(
            threshold=config.stale_threshold,
            allow_stale=config.allow_stale,
            now=self.now,
        )
        database.load_records(show_progress=not (config.quiet or config.output_json))
        return database

    def parse_lockfile(self) -> List[Dependency]:
        with self.performance_monitor.measure("parse_lockfile") as metric:
            dependencies = self.parser.parse(self.config.lockfile_path, stdin=self.stdin)
            metric.items = len(dependencies)
        return dependencies

    def audit(self) -> AuditResult:
        """Run the full pipeline.

        Raises:
            DatabaseError: Database missing, unfetchable, stale, corrupt or locked
            LockfileError: Lockfile missing or malformed
        """
        database = self.open_database()
        dependencies = self.parse_lockfile()

        self.logger.info(
            f"Scanning {self.config.lockfile_path} for vulnerabilities "
            f"({len(dependencies)} crate dependencies)"
        )

        matcher = VulnerabilityMatcher(
            ignore=self.config.ignore,
            target_arch=self.config.target_arch,
            target_os=self.config.target_os,
            performance_monitor=self.performance_monitor,
        )
        result = matcher.match(dependencies, database)

        report = ReportBuilder.build(
            result.matches,
            result.warnings,
            dependency_count=len(dependencies),
            database=database.metadata,
        )
        exit_code = ReportBuilder.exit_disposition(report, deny_warnings=self.config.deny_warnings)
        return AuditResult(report=report, exit_code=exit_code, database_stats=database.stats())
