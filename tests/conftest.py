"""Shared fixtures for CrateShield tests."""

import datetime
import json
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from crate_shield.advisories.git import GitError
from crate_shield.advisories.models import AdvisoryRecord, Category
from crate_shield.config import settings
from crate_shield.core.parsers.base import Dependency
from crate_shield.core.versions import AffectedRange, parse_version

NOW = datetime.datetime(2024, 6, 1, 12, 0, tzinfo=datetime.timezone.utc)


class FakeTransport:
    """Records mirror operations instead of running git."""

    def __init__(self, timestamp: Optional[datetime.datetime] = NOW, fail: Optional[str] = None) -> None:
        self.timestamp = timestamp
        self.fail = fail
        self.sync_calls: List[tuple] = []

    def sync(self, path: Path, url: str) -> None:
        self.sync_calls.append((path, url))
        if self.fail:
            raise GitError(self.fail)
        path.mkdir(parents=True, exist_ok=True)

    def head_timestamp(self, path: Path) -> Optional[datetime.datetime]:
        return self.timestamp


class FakeAdvisorySource:
    """Minimal stand-in for a loaded AdvisoryDatabase."""

    def __init__(self, records: Sequence[AdvisoryRecord]) -> None:
        self.records = list(records)

    def records_for(self, package_name: str) -> List[AdvisoryRecord]:
        return [record for record in self.records if record.package == package_name]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the user's ~/.cargo/audit.toml out of the tests."""
    monkeypatch.setattr(settings, "DEFAULT_CONFIG_PATH", tmp_path / "missing-audit.toml")


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def dep():
    def _dep(name: str, version: str) -> Dependency:
        return Dependency(name=name, version=parse_version(version))
    return _dep


@pytest.fixture
def make_record():
    """Build an AdvisoryRecord without going through TOML."""
    def _make_record(
        advisory_id: str = "ADV-1",
        package: str = "foo",
        affected: Optional[List[str]] = None,
        patched: Optional[List[str]] = None,
        unaffected: Optional[List[str]] = None,
        category: Category = Category.VULNERABILITY,
        arch: Optional[Sequence[str]] = None,
        os: Optional[Sequence[str]] = None,
        withdrawn: Optional[datetime.date] = None,
        title: str = "",
    ) -> AdvisoryRecord:
        return AdvisoryRecord(
            id=advisory_id,
            package=package,
            affected=AffectedRange.from_lists(affected=affected, patched=patched, unaffected=unaffected),
            date=datetime.date(2021, 1, 1),
            category=category,
            arch=frozenset(arch) if arch is not None else None,
            os=frozenset(os) if os is not None else None,
            withdrawn=withdrawn,
            title=title,
        )
    return _make_record


def advisory_markdown(
    advisory_id: str,
    package: str,
    patched: Optional[List[str]] = None,
    affected: Optional[List[str]] = None,
    unaffected: Optional[List[str]] = None,
    extra: Optional[Dict[str, str]] = None,
    affected_table: Optional[Dict[str, List[str]]] = None,
    title: str = "Test advisory",
) -> str:
    lines = [
        "```toml",
        "[advisory]",
        f'id = "{advisory_id}"',
        f'package = "{package}"',
        'date = "2021-01-01"',
    ]
    for key, value in (extra or {}).items():
        lines.append(f"{key} = {json.dumps(value)}")
    if affected_table:
        lines.append("")
        lines.append("[affected]")
        for key, value in affected_table.items():
            lines.append(f"{key} = {json.dumps(value)}")
    lines.append("")
    lines.append("[versions]")
    if affected is not None:
        lines.append(f"affected = {json.dumps(affected)}")
    if patched is not None:
        lines.append(f"patched = {json.dumps(patched)}")
    if unaffected is not None:
        lines.append(f"unaffected = {json.dumps(unaffected)}")
    lines.append("```")
    lines.append("")
    lines.append(f"# {title}")
    lines.append("")
    lines.append("Details of the issue.")
    return "\n".join(lines) + "\n"


@pytest.fixture
def mirror(tmp_path):
    """An advisory mirror directory in the RustSec layout."""
    path = tmp_path / "advisory-db"
    (path / "crates").mkdir(parents=True)
    return path


@pytest.fixture
def write_advisory(mirror):
    def _write(advisory_id: str, package: str, **kwargs) -> Path:
        crate_dir = mirror / "crates" / package
        crate_dir.mkdir(parents=True, exist_ok=True)
        file_path = crate_dir / f"{advisory_id}.md"
        file_path.write_text(advisory_markdown(advisory_id, package, **kwargs))
        return file_path
    return _write


CARGO_LOCK = '''# This file is automatically @generated by Cargo.
version = 3

[[package]]
name = "foo"
version = "1.2.0"
source = "registry+https://github.com/rust-lang/crates.io-index"
checksum = "aaaa"

[[package]]
name = "bar"
version = "0.4.1"
source = "registry+https://github.com/rust-lang/crates.io-index"
checksum = "bbbb"
dependencies = [
 "foo",
]

[[package]]
name = "app"
version = "0.1.0"
dependencies = [
 "bar",
 "foo",
]
'''


@pytest.fixture
def lockfile(tmp_path):
    path = tmp_path / "Cargo.lock"
    path.write_text(CARGO_LOCK)
    return path
