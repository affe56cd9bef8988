"""Audit configuration: file loading, validation and precedence.

A configuration is a plain immutable value. The CLI produces an overlay from
its flags and ``merge`` combines it with the file configuration; nothing
mutates a shared "current" configuration.
"""

import datetime
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    ValidationError,
    field_validator,
)

from ..advisories.database import (
    DEFAULT_DATABASE_PATH,
    DEFAULT_DATABASE_URL,
    DEFAULT_STALE_THRESHOLD,
)
from ..core.errors import ConfigurationError
from ..core.parsers.cargo import CARGO_LOCK_FILE

try:
    import tomllib
except ImportError:
    import tomli as tomllib


DEFAULT_CONFIG_PATH = Path("~/.cargo/audit.toml")

_ADVISORY_ID_RE = re.compile(r"^[A-Z][A-Z0-9]*-[A-Za-z0-9]+(?:-[A-Za-z0-9]+)*$")


class OutputFormat(str, Enum):
    TERMINAL = "terminal"
    JSON = "json"


def parse_advisory_id(value: Any) -> str:
    """Validate an advisory identifier such as ``RUSTSEC-2019-0001``.

    Raises:
        ConfigurationError: If the identifier is malformed
    """
    if not isinstance(value, str) or not _ADVISORY_ID_RE.match(value.strip()):
        raise ConfigurationError(
            f"Invalid advisory id {value!r}",
            details={"value": repr(value)},
        )
    return value.strip()


def parse_ignore_list(values: Iterable[Any]) -> FrozenSet[str]:
    return frozenset(parse_advisory_id(value) for value in values)


@dataclass(frozen=True)
class AuditConfig:
    """Resolved audit settings.

    ``None`` means "not set here", so a value from a lower-precedence
    source can show through when configurations are merged.
    """

    db_path: Optional[Path] = None
    db_url: Optional[str] = None
    lockfile: Optional[str] = None
    ignore: FrozenSet[str] = field(default_factory=frozenset)
    no_fetch: bool = False
    allow_stale: bool = False
    stale_threshold_days: Optional[int] = None
    target_arch: Optional[str] = None
    target_os: Optional[str] = None
    output_format: Optional[OutputFormat] = None
    quiet: bool = False
    deny_warnings: bool = False

    @property
    def database_path(self) -> Path:
        return Path(self.db_path or DEFAULT_DATABASE_PATH).expanduser()

    @property
    def database_url(self) -> str:
        return self.db_url or DEFAULT_DATABASE_URL

    @property
    def lockfile_path(self) -> str:
        return self.lockfile or CARGO_LOCK_FILE

    @property
    def stale_threshold(self) -> datetime.timedelta:
        if self.stale_threshold_days is None:
            return DEFAULT_STALE_THRESHOLD
        return datetime.timedelta(days=self.stale_threshold_days)

    @property
    def output_json(self) -> bool:
        return self.output_format is OutputFormat.JSON


def default_config() -> AuditConfig:
    return AuditConfig()


def merge(base: AuditConfig, overlay: AuditConfig) -> AuditConfig:
    """Combine two configurations; ``overlay`` has the higher precedence.

    Explicit overlay values replace base values, boolean switches are
    OR-combined, ignore lists are unioned and JSON output wins if either
    side asks for it.
    """
    def pick(name: str) -> Any:
        value = getattr(overlay, name)
        return value if value is not None else getattr(base, name)

    if OutputFormat.JSON in (base.output_format, overlay.output_format):
        output_format: Optional[OutputFormat] = OutputFormat.JSON
    else:
        output_format = pick("output_format")

    return AuditConfig(
        db_path=pick("db_path"),
        db_url=pick("db_url"),
        lockfile=pick("lockfile"),
        ignore=base.ignore | overlay.ignore,
        no_fetch=base.no_fetch or overlay.no_fetch,
        allow_stale=base.allow_stale or overlay.allow_stale,
        stale_threshold_days=pick("stale_threshold_days"),
        target_arch=pick("target_arch"),
        target_os=pick("target_os"),
        output_format=output_format,
        quiet=base.quiet or overlay.quiet,
        deny_warnings=base.deny_warnings or overlay.deny_warnings,
    )


class _Section(BaseModel):
    model_config = ConfigDict(extra="ignore")


class AdvisoriesSection(_Section):
    """``[advisories]`` table of ``audit.toml``."""

    ignore: List[StrictStr] = Field(default_factory=list, description="Advisory ids to ignore")
    db_path: Optional[StrictStr] = Field(default=None, description="Advisory database mirror path")
    db_url: Optional[StrictStr] = Field(default=None, description="Advisory database git URL")
    no_fetch: StrictBool = Field(default=False, description="Do not fetch the advisory database")
    allow_stale: StrictBool = Field(default=False, description="Allow a stale advisory database")
    stale_threshold_days: Optional[StrictInt] = Field(default=None, ge=0, description="Maximum database age")

    @field_validator("ignore", mode="before")
    @classmethod
    def ignore_must_be_list(cls, v: Any) -> Any:
        if not isinstance(v, list):
            raise ValueError("must be a list of advisory ids")
        return v

    @field_validator("ignore")
    @classmethod
    def validate_ignore_ids(cls, v: List[str]) -> List[str]:
        try:
            return [parse_advisory_id(advisory_id) for advisory_id in v]
        except ConfigurationError as e:
            raise ValueError(e.message) from e


class TargetSection(_Section):
    """``[target]`` table of ``audit.toml``."""

    arch: Optional[StrictStr] = Field(default=None, description="Target CPU architecture")
    os: Optional[StrictStr] = Field(default=None, description="Target operating system")


class OutputSection(_Section):
    """``[output]`` table of ``audit.toml``."""

    format: Optional[OutputFormat] = Field(default=None, description="terminal or json")
    quiet: StrictBool = Field(default=False, description="Hide status messages")
    deny_warnings: StrictBool = Field(default=False, description="Fail on informational advisories")

    @field_validator("format", mode="before")
    @classmethod
    def normalize_format(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v


class AuditFile(_Section):
    """A decoded ``audit.toml`` document; unknown tables and keys are ignored."""

    advisories: AdvisoriesSection = Field(default_factory=AdvisoriesSection)
    target: TargetSection = Field(default_factory=TargetSection)
    output: OutputSection = Field(default_factory=OutputSection)


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    )


def config_from_dict(data: Dict[str, Any]) -> AuditConfig:
    """Build an AuditConfig from a decoded ``audit.toml`` document.

    Raises:
        ConfigurationError: If a value has the wrong type or an ignore id
            is malformed
    """
    try:
        document = AuditFile.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration: {_describe(e)}",
            details={"errors": [
                {"loc": ".".join(str(part) for part in item["loc"]), "msg": item["msg"]}
                for item in e.errors()
            ]},
        ) from e

    advisories, target, output = document.advisories, document.target, document.output
    return AuditConfig(
        db_path=Path(advisories.db_path).expanduser() if advisories.db_path else None,
        db_url=advisories.db_url,
        ignore=frozenset(advisories.ignore),
        no_fetch=advisories.no_fetch,
        allow_stale=advisories.allow_stale,
        stale_threshold_days=advisories.stale_threshold_days,
        target_arch=target.arch,
        target_os=target.os,
        output_format=output.format,
        quiet=output.quiet,
        deny_warnings=output.deny_warnings,
    )


def load_config_file(path: Optional[Union[Path, str]] = None) -> AuditConfig:
    """Load ``audit.toml``.

    An explicitly given path must exist; the default location is optional.

    Raises:
        ConfigurationError: If the file is missing (explicit path only),
            unreadable or invalid
    """
    explicit = path is not None
    config_path = Path(path if explicit else DEFAULT_CONFIG_PATH).expanduser()

    if not config_path.is_file():
        if explicit:
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        return default_config()

    try:
        with open(config_path, 'rb') as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {config_path}: {e}") from e

    return config_from_dict(data)
