"""Lockfile parsers."""

from .base import STDIN_SENTINEL, BaseParser, Dependency
from .cargo import CARGO_LOCK_FILE, CargoLockParser

__all__ = [
    "BaseParser",
    "CargoLockParser",
    "CARGO_LOCK_FILE",
    "Dependency",
    "STDIN_SENTINEL",
]
