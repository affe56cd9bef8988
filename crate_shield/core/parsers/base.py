"""Base parser class and data models for lockfile parsing."""

import os
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, TextIO, Union

from semantic_version import Version

from ..errors import LockfileNotFoundError, LockfileParseError

# Path value that selects standard input instead of a file
STDIN_SENTINEL = "-"


@dataclass(frozen=True)
class Dependency:
    """A single resolved package from a lockfile.

    Identity is the ``(name, version)`` pair; ``source`` and ``checksum`` are
    informational and do not take part in equality or hashing.
    """

    name: str
    version: Version
    source: Optional[str] = field(default=None, compare=False)
    checksum: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        """Validate the dependency."""
        if not self.name or not self.name.strip():
            raise ValueError("Dependency name cannot be empty")
        if not isinstance(self.version, Version):
            raise TypeError(f"Dependency version must be a semantic Version, got {type(self.version)!r}")

    @property
    def sort_key(self) -> tuple:
        return (self.name, self.version)

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


class BaseParser(ABC):
    """Abstract base class for lockfile parsers."""

    def __init__(self) -> None:
        """Initialize the parser."""
        self.supported_filenames: List[str] = []

    @abstractmethod
    def can_parse(self, file_path: Union[Path, str]) -> bool:
        """Check if this parser can handle the given file.

        Args:
            file_path: Path to the file to check

        Returns:
            True if parser can handle the file
        """
        pass

    @abstractmethod
    def parse_text(self, text: str, origin: str = "<string>") -> List[Dependency]:
        """Parse already-read lockfile content.

        Args:
            text: Lockfile content
            origin: Where the content came from, for error messages

        Returns:
            Dependencies in source order
        """
        pass

    def parse(self, file_path: Union[Path, str], stdin: Optional[TextIO] = None) -> List[Dependency]:
        """Parse a lockfile from disk or from standard input.

        Args:
            file_path: Path to the lockfile, or ``"-"`` for standard input
            stdin: Stream to read when ``file_path`` is the stdin sentinel

        Returns:
            Dependencies in source order

        Raises:
            LockfileNotFoundError: If the path does not exist
            LockfileParseError: If the content is not a valid lockfile
        """
        if str(file_path) == STDIN_SENTINEL:
            stream = stdin if stdin is not None else sys.stdin
            try:
                text = stream.read()
            except UnicodeDecodeError as e:
                raise LockfileParseError(f"Lockfile on standard input is not valid UTF-8: {e}") from e
            return self.parse_text(text, origin="<stdin>")

        path = Path(file_path)
        self.validate_file(path)
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise LockfileParseError(f"Lockfile {path} is not valid UTF-8: {e}") from e
        return self.parse_text(text, origin=str(path))

    def validate_file(self, file_path: Path) -> None:
        """Validate that the file exists and is readable.

        Raises:
            LockfileNotFoundError: If file doesn't exist
            LockfileParseError: If the path is not a readable file
        """
        if not file_path.exists():
            raise LockfileNotFoundError(file_path)

        if not file_path.is_file():
            raise LockfileParseError(f"Path is not a file: {file_path}")

        if not os.access(file_path, os.R_OK):
            raise LockfileParseError(f"File is not readable: {file_path}")
