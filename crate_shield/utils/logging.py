"""Logging utilities for CrateShield."""

import logging
from typing import Any, Dict
from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

# Loggers handed out so far, so setup_logging can retune them later
_LOGGERS: Dict[str, "CrateShieldLogger"] = {}
_LEVEL = logging.INFO


class CrateShieldLogger:
    """Custom logger with rich formatting, writing to stderr."""

    def __init__(self, name: str, level: int = logging.INFO) -> None:
        self.logger = logging.getLogger(f"crate_shield.{name}")
        self.logger.setLevel(level)
        self._setup_handlers()

    def _setup_handlers(self) -> None:
        """Attach a single stderr RichHandler; stdout is reserved for reports."""
        console = Console(stderr=True, theme=Theme({"info": "cyan", "warning": "yellow", "debug": "dim"}))

        handler = RichHandler(
            console=console,
            show_time=False,
            show_path=False,
            markup=False,
        )

        formatter = logging.Formatter(fmt="%(name)s: %(message)s")
        handler.setFormatter(formatter)

        self.logger.handlers.clear()
        self.logger.addHandler(handler)
        self.logger.propagate = False

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)

    def info(self, msg: str, **kwargs: Any) -> None:
        """Progress and status; hidden in quiet mode."""
        self.logger.info(msg, extra=kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        """Skipped entries and tolerated problems; always shown."""
        self.logger.warning(msg, extra=kwargs)

    def debug(self, msg: str, **kwargs: Any) -> None:
        """Per-candidate match decisions; shown with --verbose."""
        self.logger.debug(msg, extra=kwargs)


def setup_logging(
    verbose: bool = False,
    quiet: bool = False,
) -> int:
    """Setup logging configuration for CrateShield.

    Quiet mode only hides informational and progress messages; warnings
    and errors are always shown.

    Args:
        verbose: Enable debug logging
        quiet: Only show warnings and errors

    Returns:
        The effective log level
    """
    global _LEVEL

    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    _LEVEL = level

    for logger in _LOGGERS.values():
        logger.set_level(level)

    return level


def get_logger(name: str) -> CrateShieldLogger:
    """Get a CrateShield logger instance.

    Args:
        name: Logger name

    Returns:
        Configured logger instance
    """
    if name not in _LOGGERS:
        _LOGGERS[name] = CrateShieldLogger(name, level=_LEVEL)
    return _LOGGERS[name]
