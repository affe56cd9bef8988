"""End-to-end tests for the audit pipeline."""

import datetime
import io

import pytest

from crate_shield.auditor import Auditor
from crate_shield.config.settings import AuditConfig
from crate_shield.core.errors import (
    DatabaseNotFoundError,
    LockfileNotFoundError,
    StaleDatabaseError,
)
from crate_shield.core.report import ExitCode

from conftest import CARGO_LOCK, NOW, FakeTransport


@pytest.fixture
def populated_mirror(mirror, write_advisory):
    write_advisory(
        "ADV-1", "foo",
        affected=[">=1.0.0, <1.3.0"],
        patched=[">=1.3.0"],
        affected_table={"os": ["windows"]},
    )
    write_advisory("ADV-2", "bar", patched=[], extra={"informational": "unmaintained"})
    return mirror


def make_config(mirror, lockfile, **kwargs):
    return AuditConfig(db_path=mirror, lockfile=str(lockfile), no_fetch=True, quiet=True, **kwargs)


class TestAuditor:
    """Test the full fetch/load/parse/match/build pipeline."""

    def test_vulnerable_lockfile(self, populated_mirror, lockfile, fake_transport):
        auditor = Auditor(make_config(populated_mirror, lockfile), transport=fake_transport, now=NOW)

        result = auditor.audit()

        assert result.exit_code is ExitCode.VULNERABILITIES_FOUND
        assert [(str(m.dependency), m.advisory.id) for m in result.report.matches] == [("foo@1.2.0", "ADV-1")]
        assert [m.advisory.id for m in result.report.warning_matches] == ["ADV-2"]
        assert result.report.summary.dependency_count == 3
        assert result.database_stats["advisories"] == 2
        assert fake_transport.sync_calls == []

    def test_ignored_advisory(self, populated_mirror, lockfile, fake_transport):
        config = make_config(populated_mirror, lockfile, ignore=frozenset({"ADV-1"}))

        result = Auditor(config, transport=fake_transport, now=NOW).audit()

        assert result.report.matches == ()
        assert result.exit_code is ExitCode.CLEAN

    def test_os_filter(self, populated_mirror, lockfile, fake_transport):
        config = make_config(populated_mirror, lockfile, target_os="linux")

        result = Auditor(config, transport=fake_transport, now=NOW).audit()

        assert result.report.matches == ()
        assert result.exit_code is ExitCode.CLEAN

    def test_deny_warnings(self, populated_mirror, lockfile, fake_transport):
        config = make_config(populated_mirror, lockfile, target_os="linux", deny_warnings=True)

        result = Auditor(config, transport=fake_transport, now=NOW).audit()

        assert result.exit_code is ExitCode.VULNERABILITIES_FOUND

    def test_stale_database_fails_before_lockfile(self, populated_mirror, tmp_path):
        transport = FakeTransport(timestamp=NOW - datetime.timedelta(days=120))
        config = make_config(populated_mirror, tmp_path / "does-not-exist.lock", stale_threshold_days=90)
        auditor = Auditor(config, transport=transport, now=NOW)

        with pytest.raises(StaleDatabaseError):
            auditor.audit()

    def test_stale_database_allowed(self, populated_mirror, lockfile):
        transport = FakeTransport(timestamp=NOW - datetime.timedelta(days=120))
        config = make_config(populated_mirror, lockfile, allow_stale=True)

        result = Auditor(config, transport=transport, now=NOW).audit()

        assert len(result.report.matches) == 1

    def test_stdin_lockfile(self, populated_mirror, lockfile, fake_transport):
        from_file = Auditor(make_config(populated_mirror, lockfile), transport=fake_transport, now=NOW).audit()
        from_stdin = Auditor(
            make_config(populated_mirror, "-"),
            transport=fake_transport,
            stdin=io.StringIO(CARGO_LOCK),
            now=NOW,
        ).audit()

        assert from_stdin.report.matches == from_file.report.matches
        assert from_stdin.exit_code == from_file.exit_code

    def test_missing_database(self, tmp_path, lockfile, fake_transport):
        config = make_config(tmp_path / "missing-db", lockfile)

        with pytest.raises(DatabaseNotFoundError):
            Auditor(config, transport=fake_transport, now=NOW).audit()

    def test_missing_lockfile(self, populated_mirror, tmp_path, fake_transport):
        config = make_config(populated_mirror, tmp_path / "Cargo.lock")

        with pytest.raises(LockfileNotFoundError):
            Auditor(config, transport=fake_transport, now=NOW).audit()

    def test_stage_timings(self, populated_mirror, lockfile, fake_transport):
        auditor = Auditor(make_config(populated_mirror, lockfile), transport=fake_transport, now=NOW)
        auditor.audit()

        stages = [metric.function_name for metric in auditor.performance_monitor.metrics]
        assert stages == ["load_records", "parse_lockfile", "match"]
