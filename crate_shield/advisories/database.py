"""Local advisory database mirror: synchronization, freshness and lookup."""

import datetime
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn

from ..core.errors import (
    CorruptDatabaseError,
    DatabaseNotFoundError,
    FetchFailedError,
    StaleDatabaseError,
)
from ..utils.logging import get_logger
from ..utils.performance import PerformanceMonitor, benchmark
from .git import GitError, GitTransport, MirrorLock
from .models import AdvisoryParseError, AdvisoryRecord, parse_advisory_text

DEFAULT_DATABASE_URL = "https://github.com/RustSec/advisory-db.git"
DEFAULT_DATABASE_PATH = Path("~/.cargo/advisory-db")
DEFAULT_STALE_THRESHOLD = datetime.timedelta(days=90)

# Subdirectory holding per-crate advisories in a RustSec-style mirror
CRATES_DIR = "crates"


@dataclass(frozen=True)
class DatabaseMetadata:
    """Facts about the mirror that drive the staleness decision."""

    mirror_path: Path
    head_commit_timestamp: Optional[datetime.datetime]
    fetched: bool

    def age(self, now: Optional[datetime.datetime] = None) -> Optional[datetime.timedelta]:
        if self.head_commit_timestamp is None:
            return None
        if now is None:
            now = datetime.datetime.now(datetime.timezone.utc)
        elif now.tzinfo is None:
            # Naive reference times are taken as UTC
            now = now.replace(tzinfo=datetime.timezone.utc)
        return now - self.head_commit_timestamp


@dataclass(frozen=True)
class SkippedEntry:
    """An advisory file that could not be loaded."""

    path: Path
    reason: str


class AdvisoryDatabase:
    """Owns the advisory records of one local mirror for the run's lifetime."""

    def __init__(
        self,
        metadata: DatabaseMetadata,
        performance_monitor: Optional[PerformanceMonitor] = None,
    ) -> None:
        """Initialize the database.

        Use ``AdvisoryDatabase.open`` rather than calling this directly.

        Args:
            metadata: Mirror metadata
            performance_monitor: Optional monitor for stage timings
        """
        self.metadata = metadata
        self.logger = get_logger("AdvisoryDatabase")
        self.performance_monitor = performance_monitor or PerformanceMonitor()
        self.skipped: List[SkippedEntry] = []
        self._records: Optional[Tuple[AdvisoryRecord, ...]] = None
        self._package_index: Dict[str, Tuple[AdvisoryRecord, ...]] = {}
        self._id_index: Dict[str, AdvisoryRecord] = {}

    @property
    def path(self) -> Path:
        return self.metadata.mirror_path

    @classmethod
    def open(
        cls,
        path: Union[Path, str],
        url: str = DEFAULT_DATABASE_URL,
        fetch: bool = True,
        transport: Optional[Any] = None,
        performance_monitor: Optional[PerformanceMonitor] = None,
    ) -> "AdvisoryDatabase":
        """Open a local mirror, synchronizing it first when ``fetch`` is set.

        Without ``fetch`` the mirror is never mutated and a missing mirror is
        an error; it is never fetched implicitly.

        Args:
            path: Mirror directory
            url: Remote to synchronize from
            fetch: Synchronize before loading
            transport: Git transport (defaults to ``GitTransport``)
            performance_monitor: Optional monitor for stage timings

        Raises:
            DatabaseNotFoundError: Mirror missing and fetching disabled
            FetchFailedError: Synchronization failed
            LockedError: Another process holds the mirror lock
        """
        path = Path(path).expanduser()
        transport = transport or GitTransport()
        logger = get_logger("AdvisoryDatabase")

        if fetch:
            logger.info(f"Fetching advisory database from {url}")
            with MirrorLock(path):
                try:
                    transport.sync(path, url)
                except GitError as e:
                    raise FetchFailedError(url, str(e)) from e
        elif not path.is_dir():
            raise DatabaseNotFoundError(path)

        metadata = DatabaseMetadata(
            mirror_path=path,
            head_commit_timestamp=transport.head_timestamp(path),
            fetched=fetch,
        )
        return cls(metadata, performance_monitor=performance_monitor)

    def check_freshness(
        self,
        threshold: datetime.timedelta = DEFAULT_STALE_THRESHOLD,
        allow_stale: bool = False,
        now: Optional[datetime.datetime] = None,
    ) -> None:
        """Fail if the mirror is older than ``threshold``.

        A mirror whose HEAD timestamp cannot be read counts as stale.

        Raises:
            StaleDatabaseError: Mirror too old and staleness not allowed
        """
        age = self.metadata.age(now)
        if age is not None and age <= threshold:
            return

        age_days = age.days if age is not None else None
        if allow_stale:
            self.logger.warning(
                f"Advisory database is stale (age: {age_days if age_days is not None else 'unknown'} days); "
                "continuing because stale databases are allowed"
            )
            return
        raise StaleDatabaseError(age_days, threshold.days)

    @benchmark
    def load_records(self, show_progress: bool = False) -> Tuple[AdvisoryRecord, ...]:
        """Parse every advisory in the mirror and index them by package.

        Malformed entries are skipped with a warning. Loading happens once;
        later calls return the same collection.

        Raises:
            CorruptDatabaseError: No valid advisory could be loaded
        """
        if self._records is not None:
            return self._records

        with self.performance_monitor.measure("load_records") as metric:
            files = self._advisory_files()
            records: List[AdvisoryRecord] = []

            if show_progress:
                with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    BarColumn(),
                    console=Console(stderr=True),
                    transient=True,
                ) as progress:
                    task = progress.add_task("Loading advisories...", total=len(files))
                    for advisory_file in files:
                        self._load_file(advisory_file, records)
                        progress.update(task, advance=1)
            else:
                for advisory_file in files:
                    self._load_file(advisory_file, records)

            metric.items = len(records)

        if not records:
            raise CorruptDatabaseError(
                f"No valid advisories found in {self.path} "
                f"({len(self.skipped)} malformed entries skipped)",
                details={"path": str(self.path), "skipped": len(self.skipped)},
            )

        self._build_index(records)
        self.logger.info(f"Loaded {len(records)} advisories from {self.path}")
        return self._records

    def _advisory_files(self) -> List[Path]:
        crates_dir = self.path / CRATES_DIR
        root = crates_dir if crates_dir.is_dir() else self.path

        files = [
            file_path
            for pattern in ("*.toml", "*.md")
            for file_path in root.rglob(pattern)
            if ".git" not in file_path.relative_to(root).parts and file_path.is_file()
        ]
        return sorted(files)

    def _load_file(self, file_path: Path, records: List[AdvisoryRecord]) -> None:
        """Parse one advisory file, appending it to ``records`` if valid."""
        try:
            text = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            self._skip(file_path, f"unreadable: {e}")
            return

        is_markdown = file_path.suffix == ".md"
        if is_markdown and not text.lstrip().startswith("```toml") and file_path.parent == self.path:
            # Top-level README and friends are not advisories
            self.logger.debug(f"Ignoring non-advisory file {file_path}")
            return

        try:
            record = parse_advisory_text(text, markdown=is_markdown)
        except AdvisoryParseError as e:
            self._skip(file_path, str(e))
            return

        if record.id in self._id_index:
            self._skip(file_path, f"duplicate advisory id {record.id}")
            return

        self._id_index[record.id] = record
        records.append(record)

    def _skip(self, file_path: Path, reason: str) -> None:
        self.logger.warning(f"Skipping malformed advisory {file_path}: {reason}")
        self.skipped.append(SkippedEntry(path=file_path, reason=reason))

    def _build_index(self, records: List[AdvisoryRecord]) -> None:
        """Group records by package name, ordered by advisory id."""
        index: Dict[str, List[AdvisoryRecord]] = defaultdict(list)
        for record in records:
            index[record.package].append(record)

        self._package_index = {
            package: tuple(sorted(package_records, key=lambda r: r.id))
            for package, package_records in index.items()
        }
        self._records = tuple(sorted(records, key=lambda r: r.id))

    def _require_loaded(self) -> None:
        if self._records is None:
            raise RuntimeError("Advisory records not loaded. Call load_records() first.")

    def records_for(self, package_name: str) -> Tuple[AdvisoryRecord, ...]:
        """Return the advisories for one package (empty if there are none)."""
        self._require_loaded()
        return self._package_index.get(package_name, ())

    def get(self, advisory_id: str) -> Optional[AdvisoryRecord]:
        self._require_loaded()
        return self._id_index.get(advisory_id)

    def __len__(self) -> int:
        return len(self._records or ())

    def __iter__(self) -> Iterator[AdvisoryRecord]:
        return iter(self._records or ())

    def stats(self) -> Dict[str, Any]:
        """Get database statistics.

        Returns:
            Dictionary with database statistics
        """
        timestamp = self.metadata.head_commit_timestamp
        return {
            "path": str(self.path),
            "fetched": self.metadata.fetched,
            "last_updated": timestamp.isoformat() if timestamp else None,
            "advisories": len(self),
            "packages": len(self._package_index),
            "skipped": len(self.skipped),
        }
