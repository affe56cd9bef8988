"""Cargo.lock parser."""

from pathlib import Path
from typing import Any, Dict, List, Union

from ..errors import LockfileParseError
from ..versions import parse_version
from .base import STDIN_SENTINEL, BaseParser, Dependency
from ...utils.logging import get_logger

try:
    import tomllib
except ImportError:
    import tomli as tomllib


CARGO_LOCK_FILE = "Cargo.lock"


class CargoLockParser(BaseParser):
    """Parser for Cargo.lock files (lockfile format versions 1 through 4)."""

    def __init__(self) -> None:
        """Initialize the Cargo.lock parser."""
        super().__init__()
        self.supported_filenames = [CARGO_LOCK_FILE]
        self.logger = get_logger("CargoLockParser")

    def can_parse(self, file_path: Union[Path, str]) -> bool:
        if str(file_path) == STDIN_SENTINEL:
            return True
        return Path(file_path).name in self.supported_filenames

    def parse_text(self, text: str, origin: str = "<string>") -> List[Dependency]:
        """Parse Cargo.lock content.

        Args:
            text: TOML content of the lockfile
            origin: Where the content came from, for error messages

        Returns:
            Dependencies in the order they appear in the lockfile

        Raises:
            LockfileParseError: If the content is not a valid Cargo.lock
        """
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            raise LockfileParseError(f"Invalid TOML in {origin}: {e}") from e

        packages = data.get("package", [])
        if not isinstance(packages, list):
            raise LockfileParseError(f"'package' in {origin} must be an array of tables")

        dependencies = [
            self._create_dependency(entry, index, origin)
            for index, entry in enumerate(packages)
        ]

        self.logger.debug(f"Parsed {len(dependencies)} packages from {origin}")
        return dependencies

    def _create_dependency(self, entry: Dict[str, Any], index: int, origin: str) -> Dependency:
        """Create a Dependency from one ``[[package]]`` table."""
        if not isinstance(entry, dict):
            raise LockfileParseError(f"Package entry #{index + 1} in {origin} is not a table")

        name = entry.get("name")
        version = entry.get("version")
        if not isinstance(name, str) or not name.strip():
            raise LockfileParseError(f"Package entry #{index + 1} in {origin} has no name")
        if not isinstance(version, str):
            raise LockfileParseError(f"Package '{name}' in {origin} has no version")

        try:
            return Dependency(
                name=name.strip(),
                version=parse_version(version),
                source=entry.get("source"),
                checksum=entry.get("checksum"),
            )
        except ValueError as e:
            raise LockfileParseError(
                f"Package '{name}' in {origin} has an invalid version {version!r}: {e}"
            ) from e
