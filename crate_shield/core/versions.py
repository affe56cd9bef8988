"""Semantic version requirements and affected-range membership.

Versions are ``semantic_version.Version`` objects, so ordering follows semver
precedence (major.minor.patch, then pre-release identifiers). Requirements use
Cargo's syntax: ``=``, ``>``, ``>=``, ``<``, ``<=``, caret (the default), tilde
and ``*`` wildcards, with comma-separated clauses that must all hold.
"""

import operator
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from semantic_version import Version


class InvalidVersionReq(ValueError):
    """Raised when a version requirement string cannot be parsed."""


_COMPARATOR_OPS: Dict[str, Callable[[Version, Version], bool]] = {
    "==": operator.eq,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}

_CLAUSE_RE = re.compile(
    r"""^(?P<op>==|=|>=|<=|>|<|\^|~)?
        (?P<major>\d+|[*xX])
        (?:\.(?P<minor>\d+|[*xX]))?
        (?:\.(?P<patch>\d+|[*xX]))?
        (?:-(?P<pre>[0-9A-Za-z.-]+))?
        (?:\+(?P<build>[0-9A-Za-z.-]+))?$""",
    re.VERBOSE,
)

_WILDCARDS = {"*", "x", "X"}


def parse_version(text: str) -> Version:
    """Parse a strict semantic version string.

    Raises:
        ValueError: If the string is not a valid semantic version
    """
    return Version(str(text).strip())


def _bound(major: int, minor: int = 0, patch: int = 0, pre: Optional[str] = None) -> Version:
    text = f"{major}.{minor}.{patch}"
    if pre:
        text += f"-{pre}"
    return Version(text)


def _upper(major: int, minor: int = 0, patch: int = 0) -> Version:
    # Lowest possible pre-release, so prereleases of the next version stay excluded
    return _bound(major, minor, patch, "0")


@dataclass(frozen=True)
class Comparator:
    """A single ``<op> <version>`` constraint."""

    op: str
    version: Version

    def matches(self, version: Version) -> bool:
        return _COMPARATOR_OPS[self.op](version, self.version)

    def __str__(self) -> str:
        return f"{self.op}{self.version}"


def _expand_clause(clause: str) -> List[Comparator]:
    """Expand one requirement clause into primitive comparators."""
    if clause in _WILDCARDS:
        return []

    match = _CLAUSE_RE.match(clause)
    if not match:
        raise InvalidVersionReq(f"Invalid version requirement clause: {clause!r}")

    op = match.group("op") or "^"
    parts = [match.group("major"), match.group("minor"), match.group("patch")]
    pre = match.group("pre")

    # Cut the version at its first wildcard; "1.*" behaves like "=1"
    numbers: List[int] = []
    wildcard = False
    for part in parts:
        if part is None:
            break
        if part in _WILDCARDS:
            wildcard = True
            break
        numbers.append(int(part))

    if wildcard:
        if op not in ("^", "=", "=="):
            raise InvalidVersionReq(f"Wildcard not allowed with operator {op!r}: {clause!r}")
        if pre:
            raise InvalidVersionReq(f"Wildcard version cannot carry a pre-release: {clause!r}")
        if not numbers:
            return []
        op = "="
    if pre and len(numbers) < 3:
        raise InvalidVersionReq(f"Pre-release requires a full version: {clause!r}")

    major = numbers[0]
    minor = numbers[1] if len(numbers) > 1 else None
    patch = numbers[2] if len(numbers) > 2 else None
    full = patch is not None
    lower = _bound(major, minor or 0, patch or 0, pre)

    if op in ("=", "=="):
        if full:
            return [Comparator("==", lower)]
        if minor is None:
            return [Comparator(">=", lower), Comparator("<", _upper(major + 1))]
        return [Comparator(">=", lower), Comparator("<", _upper(major, minor + 1))]

    if op == ">":
        if full:
            return [Comparator(">", lower)]
        if minor is None:
            return [Comparator(">=", _bound(major + 1))]
        return [Comparator(">=", _bound(major, minor + 1))]

    if op == ">=":
        return [Comparator(">=", lower)]

    if op == "<":
        return [Comparator("<", lower)]

    if op == "<=":
        if full:
            return [Comparator("<=", lower)]
        if minor is None:
            return [Comparator("<", _upper(major + 1))]
        return [Comparator("<", _upper(major, minor + 1))]

    if op == "~":
        if minor is None:
            return [Comparator(">=", lower), Comparator("<", _upper(major + 1))]
        return [Comparator(">=", lower), Comparator("<", _upper(major, minor + 1))]

    # Caret
    if major > 0 or minor is None:
        return [Comparator(">=", lower), Comparator("<", _upper(major + 1))]
    if minor > 0 or patch is None:
        return [Comparator(">=", lower), Comparator("<", _upper(0, minor + 1))]
    return [Comparator(">=", lower), Comparator("<", _upper(0, 0, patch + 1))]


@dataclass(frozen=True)
class VersionReq:
    """A conjunction of comparators parsed from a Cargo requirement string."""

    text: str
    comparators: Tuple[Comparator, ...] = field(default_factory=tuple)

    @classmethod
    def parse(cls, text: str) -> "VersionReq":
        """Parse a requirement such as ``">= 1.2.0, < 1.3.0"``.

        Raises:
            InvalidVersionReq: If any clause is malformed
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidVersionReq(f"Empty version requirement: {text!r}")

        comparators: List[Comparator] = []
        for clause in text.split(","):
            clause = re.sub(r"\s+", "", clause)
            if not clause:
                raise InvalidVersionReq(f"Empty clause in requirement: {text!r}")
            comparators.extend(_expand_clause(clause))

        return cls(text=text.strip(), comparators=tuple(comparators))

    def matches(self, version: Version) -> bool:
        return all(comparator.matches(version) for comparator in self.comparators)

    def __str__(self) -> str:
        return self.text


ANY_VERSION = VersionReq(text="*")


def _parse_reqs(values: Iterable[str], label: str) -> Tuple[VersionReq, ...]:
    if isinstance(values, str):
        raise InvalidVersionReq(f"'{label}' must be a list of requirements, got a string")
    return tuple(VersionReq.parse(value) for value in values)


@dataclass(frozen=True)
class AffectedRange:
    """Affected versions minus unaffected and patched versions."""

    affected: Tuple[VersionReq, ...]
    unaffected: Tuple[VersionReq, ...] = ()
    patched: Tuple[VersionReq, ...] = ()

    def __post_init__(self) -> None:
        if not self.affected:
            raise InvalidVersionReq("Affected range has no affected bound")

    @classmethod
    def from_lists(
        cls,
        affected: Optional[Iterable[str]] = None,
        unaffected: Optional[Iterable[str]] = None,
        patched: Optional[Iterable[str]] = None,
    ) -> "AffectedRange":
        """Build a range from raw requirement lists.

        An explicit ``affected`` list is used as is. Without one, a declared
        ``patched`` list (even an empty one) means every version outside the
        patched and unaffected sets is affected. With neither there is no
        affected bound and the range is rejected.

        Raises:
            InvalidVersionReq: If the range has no affected bound or a
                requirement is malformed
        """
        if affected is not None:
            affected_reqs = _parse_reqs(affected, "affected")
        elif patched is not None:
            affected_reqs = (ANY_VERSION,)
        else:
            affected_reqs = ()

        return cls(
            affected=affected_reqs,
            unaffected=_parse_reqs(unaffected or (), "unaffected"),
            patched=_parse_reqs(patched or (), "patched"),
        )

    def is_patched(self, version: Version) -> bool:
        return any(req.matches(version) for req in self.patched)

    def is_unaffected(self, version: Version) -> bool:
        return any(req.matches(version) for req in self.unaffected)

    def contains(self, version: Version) -> bool:
        """Return True if ``version`` is vulnerable under this range."""
        if not any(req.matches(version) for req in self.affected):
            return False
        return not (self.is_unaffected(version) or self.is_patched(version))

    def __contains__(self, version: Version) -> bool:
        return self.contains(version)
