"""Output formatters for CrateShield reports."""

import json
from typing import Any, Dict, List, Optional, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.markup import escape
from rich.text import Text

from ..advisories.models import AdvisoryRecord, Severity
from ..core.errors import CrateShieldError
from ..core.matcher import Match
from ..core.report import DependencyFindings, Report


SEVERITY_STYLES = {
    Severity.CRITICAL: "red bold",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
    Severity.NONE: "white",
}


class ConsoleFormatter:
    """Rich console formatter for CrateShield output."""

    def __init__(self, console: Optional[Console] = None, quiet: bool = False) -> None:
        """Initialize the console formatter.

        Args:
            console: Rich console instance for the report
            quiet: Suppress status messages (never the report or errors)
        """
        self.console = console or Console()
        self.quiet = quiet

    def status(self, message: str) -> None:
        """Print a progress/status line unless in quiet mode."""
        if not self.quiet:
            self.console.print(Text(message, style="dim"))

    def format_report(self, report: Report) -> None:
        """Render the full report: summary, vulnerabilities and warnings."""
        self.console.print(self._create_summary_panel(report))

        if report.vulnerabilities:
            self.console.print(self._create_findings_table("Vulnerabilities Found", report.vulnerabilities))
        else:
            self.console.print(Panel("No vulnerable packages found", style="green"))

        if report.warnings:
            self.console.print(self._create_findings_table("Warnings", report.warnings, warnings=True))

    def _create_summary_panel(self, report: Report) -> Panel:
        summary = report.summary
        if summary.vulnerability_count:
            style = "red"
            title = f"{summary.vulnerability_count} vulnerabilities found!"
        else:
            style = "green"
            title = "Success"

        lines = []
        if summary.dependency_count is not None:
            lines.append(f"• Dependencies scanned: {summary.dependency_count}")
        lines.append(f"• Vulnerable dependencies: {summary.vulnerable_dependency_count}")
        lines.append(f"• Total vulnerabilities: {summary.vulnerability_count}")
        lines.append(f"• Warnings: {summary.warning_count}")

        database = report.database
        if database is not None and database.head_commit_timestamp is not None:
            lines.append(f"• Advisory database updated: {database.head_commit_timestamp:%Y-%m-%d}")

        return Panel("\n".join(lines), title=title, style=style)

    def _create_findings_table(
        self,
        title: str,
        groups: Tuple[DependencyFindings, ...],
        warnings: bool = False,
    ) -> Table:
        table = Table(title=title)

        table.add_column("Crate", style="cyan", no_wrap=True)
        table.add_column("Version", style="blue")
        table.add_column("ID", style="yellow" if warnings else "red", no_wrap=True)
        table.add_column("Kind" if warnings else "Severity")
        table.add_column("Title", style="white")
        table.add_column("Solution", style="green")

        for group in groups:
            for match in group.matches:
                advisory = match.advisory
                # Advisory data is external; cells are plain Text, never markup
                table.add_row(
                    Text(match.dependency.name),
                    Text(str(match.dependency.version)),
                    Text(advisory.id),
                    self._kind_text(advisory) if warnings else self._severity_text(advisory),
                    Text(advisory.title or "-"),
                    Text(self._solution(advisory)),
                )

        return table

    @staticmethod
    def _severity_text(advisory: AdvisoryRecord) -> Text:
        if advisory.severity is None:
            return Text("unknown", style="white")
        return Text(advisory.severity.value, style=SEVERITY_STYLES[advisory.severity])

    @staticmethod
    def _kind_text(advisory: AdvisoryRecord) -> Text:
        return Text(advisory.informational or advisory.category.value, style="yellow")

    @staticmethod
    def _solution(advisory: AdvisoryRecord) -> str:
        if advisory.affected.patched:
            return "Upgrade to " + " OR ".join(str(req) for req in advisory.affected.patched)
        return "No patched version available"

    def format_error(self, error: CrateShieldError) -> None:
        """Format and display an error. Never suppressed by quiet mode."""
        content = f"[bold red]Error:[/bold red] {escape(error.message)}"
        self.console.print(Panel(content, style="red"))


class JSONFormatter:
    """Machine-readable JSON rendering of a report."""

    def format_report(self, report: Report, database_stats: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Format a report as a JSON-serializable dictionary.

        The output carries no wall-clock timestamps, so identical inputs
        produce identical documents.
        """
        summary = report.summary
        return {
            "database": database_stats or self._database(report),
            "summary": {
                "dependency_count": summary.dependency_count,
                "vulnerable_dependency_count": summary.vulnerable_dependency_count,
                "vulnerability_count": summary.vulnerability_count,
                "warning_count": summary.warning_count,
            },
            "vulnerabilities": {
                "found": not report.is_clean,
                "count": summary.vulnerability_count,
                "list": self._findings(report.vulnerabilities),
            },
            "warnings": self._findings(report.warnings),
        }

    def dump(self, report: Report, database_stats: Optional[Dict[str, Any]] = None) -> str:
        return json.dumps(self.format_report(report, database_stats), indent=2, ensure_ascii=False)

    @staticmethod
    def _database(report: Report) -> Dict[str, Any]:
        database = report.database
        if database is None:
            return {}
        timestamp = database.head_commit_timestamp
        return {
            "path": str(database.mirror_path),
            "fetched": database.fetched,
            "last_updated": timestamp.isoformat() if timestamp else None,
        }

    def _findings(self, groups: Tuple[DependencyFindings, ...]) -> List[Dict[str, Any]]:
        return [self._match(match) for group in groups for match in group.matches]

    @staticmethod
    def _match(match: Match) -> Dict[str, Any]:
        advisory = match.advisory
        affected = advisory.affected
        return {
            "package": {
                "name": match.dependency.name,
                "version": str(match.dependency.version),
                "source": match.dependency.source,
            },
            "advisory": {
                "id": advisory.id,
                "package": advisory.package,
                "title": advisory.title,
                "date": advisory.date.isoformat(),
                "url": advisory.url,
                "aliases": sorted(advisory.aliases),
                "category": advisory.category.value,
                "informational": advisory.informational,
                "severity": advisory.severity.value if advisory.severity else None,
                "cvss": advisory.cvss,
                "withdrawn": advisory.withdrawn.isoformat() if advisory.withdrawn else None,
            },
            "versions": {
                "patched": [str(req) for req in affected.patched],
                "unaffected": [str(req) for req in affected.unaffected],
            },
            "affected": {
                "arch": sorted(advisory.arch) if advisory.arch is not None else None,
                "os": sorted(advisory.os) if advisory.os is not None else None,
            },
        }

    def format_error(self, error: CrateShieldError) -> Dict[str, Any]:
        return error.to_dict()

    def dump_error(self, error: CrateShieldError) -> str:
        return json.dumps(self.format_error(error), indent=2, ensure_ascii=False)
