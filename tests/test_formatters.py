"""Tests for report rendering."""

import io
import json

import pytest
from rich.console import Console

from crate_shield.advisories.models import Category
from crate_shield.core.errors import StaleDatabaseError
from crate_shield.core.matcher import Match
from crate_shield.core.report import ReportBuilder
from crate_shield.output.formatters import ConsoleFormatter, JSONFormatter


@pytest.fixture
def report(dep, make_record):
    vulnerable = make_record("ADV-1", "foo", affected=[">=1.0.0, <1.3.0"], patched=[">=1.3.0"], os=["windows"])
    unmaintained = make_record("ADV-2", "bar", patched=[], category=Category.UNMAINTAINED)
    return ReportBuilder.build(
        [Match(dependency=dep("foo", "1.2.0"), advisory=vulnerable)],
        informational=[Match(dependency=dep("bar", "0.4.1"), advisory=unmaintained)],
        dependency_count=3,
    )


def render():
    buffer = io.StringIO()
    console = Console(file=buffer, width=200)
    return buffer, console


class TestConsoleFormatter:
    """Test rich terminal output."""

    def test_report_with_vulnerabilities(self, report):
        buffer, console = render()

        ConsoleFormatter(console).format_report(report)

        output = buffer.getvalue()
        assert "1 vulnerabilities found!" in output
        assert "Vulnerabilities Found" in output
        assert "ADV-1" in output
        assert "Upgrade to >=1.3.0" in output
        assert "Warnings" in output
        assert "ADV-2" in output
        assert "No patched version available" in output

    def test_clean_report(self):
        buffer, console = render()

        ConsoleFormatter(console).format_report(ReportBuilder.build([], dependency_count=3))

        assert "No vulnerable packages found" in buffer.getvalue()

    def test_quiet_hides_status_only(self, report):
        buffer, console = render()
        formatter = ConsoleFormatter(console, quiet=True)

        formatter.status("Loaded 3 security advisories")
        formatter.format_report(report)

        output = buffer.getvalue()
        assert "Loaded" not in output
        assert "ADV-1" in output

    @pytest.mark.parametrize("title", [
        "Out-of-bounds read in [/u8] slice handling",
        "Unsoundness in [bold]Vec[/bold]",
    ])
    def test_bracketed_titles_render_verbatim(self, dep, make_record, title):
        record = make_record("ADV-1", "foo", patched=[">=1.3.0"], title=title)
        report = ReportBuilder.build([Match(dependency=dep("foo", "1.2.0"), advisory=record)])
        buffer, console = render()

        ConsoleFormatter(console).format_report(report)

        assert title in buffer.getvalue()

    def test_status_is_not_markup(self):
        buffer, console = render()

        ConsoleFormatter(console).status("Loaded 3 security advisories (from /tmp/[db]/x)")

        assert "(from /tmp/[db]/x)" in buffer.getvalue()

    def test_error_message_is_not_markup(self):
        buffer, console = render()

        ConsoleFormatter(console).format_error(StaleDatabaseError(120, 90))

        assert "last updated 120 days ago" in buffer.getvalue()


class TestJSONFormatter:
    """Test machine-readable output."""

    def test_format_report(self, report):
        data = JSONFormatter().format_report(report)

        assert data["summary"] == {
            "dependency_count": 3,
            "vulnerable_dependency_count": 1,
            "vulnerability_count": 1,
            "warning_count": 1,
        }
        assert data["vulnerabilities"]["found"] is True
        finding = data["vulnerabilities"]["list"][0]
        assert finding["package"] == {"name": "foo", "version": "1.2.0", "source": None}
        assert finding["advisory"]["id"] == "ADV-1"
        assert finding["advisory"]["category"] == "vulnerability"
        assert finding["affected"] == {"arch": None, "os": ["windows"]}
        assert finding["versions"] == {"patched": [">=1.3.0"], "unaffected": []}
        assert [w["advisory"]["id"] for w in data["warnings"]] == ["ADV-2"]
        assert data["database"] == {}

    def test_dump_is_deterministic(self, report):
        formatter = JSONFormatter()

        assert formatter.dump(report) == formatter.dump(report)
        json.loads(formatter.dump(report))

    def test_dump_error(self):
        data = json.loads(JSONFormatter().dump_error(StaleDatabaseError(None, 90)))

        assert data["error"]["code"] == "DATABASE_STALE"
        assert data["error"]["details"] == {"age_days": None, "threshold_days": 90}
