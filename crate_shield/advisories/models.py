"""Advisory record model and parsing of raw advisory files.

Advisories are TOML documents, either stand-alone ``.toml`` files or
Markdown files whose front matter is a fenced ``toml`` block::

    ```toml
    [advisory]
    id = "RUSTSEC-2019-0001"
    package = "ammonia"
    date = "2019-04-27"

    [versions]
    patched = [">= 2.1.0"]
    ```

    # Uncontrolled recursion leads to abort in HTML serialization

    Affected versions of this crate did use recursion ...

Parsing is a pure transform: no I/O happens here.
"""

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

from cvss import CVSS3, CVSS4

from ..core.versions import AffectedRange, InvalidVersionReq

try:
    import tomllib
except ImportError:
    import tomli as tomllib


class AdvisoryParseError(ValueError):
    """Raised when a single advisory entry is malformed."""


class Severity(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_score(cls, score: float) -> "Severity":
        if score >= 9.0:
            return cls.CRITICAL
        if score >= 7.0:
            return cls.HIGH
        if score >= 4.0:
            return cls.MEDIUM
        if score > 0.0:
            return cls.LOW
        return cls.NONE


class Category(str, Enum):
    VULNERABILITY = "vulnerability"
    UNMAINTAINED = "unmaintained"
    NOTICE = "notice"

    @property
    def is_informational(self) -> bool:
        return self is not Category.VULNERABILITY


@dataclass(frozen=True)
class AdvisoryRecord:
    """A single security advisory for one package."""

    id: str
    package: str
    affected: AffectedRange
    date: datetime.date
    category: Category = Category.VULNERABILITY
    aliases: FrozenSet[str] = frozenset()
    severity: Optional[Severity] = None
    arch: Optional[FrozenSet[str]] = None
    os: Optional[FrozenSet[str]] = None
    withdrawn: Optional[datetime.date] = None
    title: str = ""
    description: str = field(default="", repr=False)
    url: Optional[str] = None
    cvss: Optional[str] = None
    keywords: Tuple[str, ...] = ()
    informational: Optional[str] = None

    @property
    def is_withdrawn(self) -> bool:
        return self.withdrawn is not None

    @property
    def is_informational(self) -> bool:
        return self.category.is_informational

    def applies_to_arch(self, arch: Optional[str]) -> bool:
        """An unconstrained advisory applies to every architecture."""
        return arch is None or self.arch is None or arch in self.arch

    def applies_to_os(self, os: Optional[str]) -> bool:
        return os is None or self.os is None or os in self.os


def severity_from_cvss(vector: str) -> Severity:
    """Compute the severity band of a CVSS v3 or v4 vector.

    Raises:
        AdvisoryParseError: If the vector is malformed
    """
    try:
        if vector.startswith("CVSS:4"):
            score = float(CVSS4(vector).base_score)
        else:
            score = float(CVSS3(vector).base_score)
    except Exception as e:
        raise AdvisoryParseError(f"Invalid CVSS vector {vector!r}: {e}") from e
    return Severity.from_score(score)


def split_front_matter(text: str) -> Tuple[str, str, str]:
    """Split a Markdown advisory into (toml, title, description).

    Raises:
        AdvisoryParseError: If the file has no fenced ``toml`` front matter
    """
    stripped = text.lstrip()
    if not stripped.startswith("```toml"):
        raise AdvisoryParseError("Markdown advisory does not start with a ```toml block")

    body = stripped[len("```toml"):]
    end = body.find("\n```")
    if end == -1:
        raise AdvisoryParseError("Unterminated ```toml front matter")

    front_matter = body[:end]
    rest = body[end + len("\n```"):].strip()

    title = ""
    description = rest
    if rest.startswith("# "):
        first_line, _, description = rest.partition("\n")
        title = first_line[2:].strip()
        description = description.strip()

    return front_matter, title, description


def _require_str(table: Dict[str, Any], key: str) -> str:
    value = table.get(key)
    if not isinstance(value, str) or not value.strip():
        raise AdvisoryParseError(f"Missing or invalid '{key}'")
    return value.strip()


def _parse_date(value: Any, key: str) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        try:
            return datetime.date.fromisoformat(value.strip())
        except ValueError as e:
            raise AdvisoryParseError(f"Invalid date in '{key}': {value!r}") from e
    raise AdvisoryParseError(f"Missing or invalid '{key}'")


def _string_set(value: Any, key: str) -> Optional[FrozenSet[str]]:
    if value is None:
        return None
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise AdvisoryParseError(f"'{key}' must be a list of strings")
    items = list(value)
    if not all(isinstance(item, str) for item in items):
        raise AdvisoryParseError(f"'{key}' must be a list of strings")
    return frozenset(items)


def _parse_category(informational: Any) -> Category:
    if informational is None:
        return Category.VULNERABILITY
    if not isinstance(informational, str):
        raise AdvisoryParseError("'informational' must be a string")
    if informational.strip().lower() == Category.UNMAINTAINED.value:
        return Category.UNMAINTAINED
    # "notice", "unsound" and any future informational kind are non-blocking notices
    return Category.NOTICE


def _parse_range(data: Dict[str, Any], advisory: Dict[str, Any]) -> AffectedRange:
    versions = data.get("versions")
    if versions is None:
        # Legacy layout kept the version lists inside [advisory]
        versions = {
            key: advisory[legacy]
            for key, legacy in (
                ("affected", "affected_versions"),
                ("patched", "patched_versions"),
                ("unaffected", "unaffected_versions"),
            )
            if legacy in advisory
        }
    if not isinstance(versions, dict):
        raise AdvisoryParseError("'versions' must be a table")

    try:
        return AffectedRange.from_lists(
            affected=versions.get("affected"),
            unaffected=versions.get("unaffected"),
            patched=versions.get("patched"),
        )
    except (InvalidVersionReq, TypeError) as e:
        raise AdvisoryParseError(f"Invalid version ranges: {e}") from e


def parse_advisory(
    data: Dict[str, Any],
    title: str = "",
    description: str = "",
) -> AdvisoryRecord:
    """Build an AdvisoryRecord from a decoded TOML document.

    Raises:
        AdvisoryParseError: If required fields are missing or invalid
    """
    advisory = data.get("advisory")
    if not isinstance(advisory, dict):
        raise AdvisoryParseError("Missing [advisory] table")

    advisory_id = _require_str(advisory, "id")
    try:
        affected_table = data.get("affected") or {}
        if not isinstance(affected_table, dict):
            raise AdvisoryParseError("'affected' must be a table")

        cvss = advisory.get("cvss")
        if cvss is not None and not isinstance(cvss, str):
            raise AdvisoryParseError("'cvss' must be a string")

        withdrawn = advisory.get("withdrawn")
        keywords = _string_set(advisory.get("keywords"), "keywords") or frozenset()

        return AdvisoryRecord(
            id=advisory_id,
            package=_require_str(advisory, "package"),
            affected=_parse_range(data, advisory),
            date=_parse_date(advisory.get("date"), "date"),
            category=_parse_category(advisory.get("informational")),
            aliases=_string_set(advisory.get("aliases"), "aliases") or frozenset(),
            severity=severity_from_cvss(cvss) if cvss else None,
            arch=_string_set(affected_table.get("arch", advisory.get("affected_arch")), "arch"),
            os=_string_set(affected_table.get("os", advisory.get("affected_os")), "os"),
            withdrawn=_parse_date(withdrawn, "withdrawn") if withdrawn is not None else None,
            title=title or str(advisory.get("title", "")),
            description=description or str(advisory.get("description", "")),
            url=advisory.get("url"),
            cvss=cvss,
            keywords=tuple(sorted(keywords)),
            informational=advisory.get("informational"),
        )
    except AdvisoryParseError as e:
        raise AdvisoryParseError(f"{advisory_id}: {e}") from e


def parse_advisory_text(text: str, markdown: bool = False) -> AdvisoryRecord:
    """Parse the raw content of one advisory file.

    Args:
        text: File content
        markdown: True for ``.md`` files with TOML front matter

    Raises:
        AdvisoryParseError: If the content is not a valid advisory
    """
    title = description = ""
    if markdown:
        text, title, description = split_front_matter(text)

    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise AdvisoryParseError(f"Invalid TOML: {e}") from e

    return parse_advisory(data, title=title, description=description)
