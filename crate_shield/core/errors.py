"""Error taxonomy for CrateShield.

Every fatal condition in the audit pipeline is raised as a subclass of
``CrateShieldError`` and is only caught at the CLI boundary, where it is
rendered and mapped to an exit code.
"""

from typing import Any, Dict, Optional


class CrateShieldError(Exception):
    """Base class for user-facing CrateShield errors."""

    error_code = "CRATESHIELD_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message
            details: Additional error context
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a dictionary for JSON output."""
        error: Dict[str, Any] = {
            "code": self.error_code,
            "message": self.message,
        }
        if self.details:
            error["details"] = self.details
        return {"error": error}


class ConfigurationError(CrateShieldError):
    """Malformed command-line or configuration file value."""

    error_code = "CONFIGURATION_ERROR"


class DatabaseError(CrateShieldError):
    """Base class for advisory database failures."""

    error_code = "DATABASE_ERROR"


class DatabaseNotFoundError(DatabaseError):
    """The local advisory mirror does not exist and fetching is disabled."""

    error_code = "DATABASE_NOT_FOUND"

    def __init__(self, path: Any) -> None:
        super().__init__(
            f"Advisory database not found at {path} (fetching is disabled)",
            details={"path": str(path)},
        )


class FetchFailedError(DatabaseError):
    """Synchronizing the local mirror with its remote failed."""

    error_code = "DATABASE_FETCH_FAILED"

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(
            f"Failed to fetch advisory database from {url}: {reason}",
            details={"url": url, "reason": reason},
        )


class StaleDatabaseError(DatabaseError):
    """The mirror's HEAD commit is older than the freshness threshold."""

    error_code = "DATABASE_STALE"

    def __init__(self, age_days: Optional[int], threshold_days: int) -> None:
        if age_days is None:
            message = "Advisory database age is unknown (no HEAD commit timestamp)"
        else:
            message = (
                f"Advisory database is stale: last updated {age_days} days ago "
                f"(threshold {threshold_days} days)"
            )
        super().__init__(
            message,
            details={"age_days": age_days, "threshold_days": threshold_days},
        )
        self.age_days = age_days
        self.threshold_days = threshold_days


class CorruptDatabaseError(DatabaseError):
    """No valid advisory records could be loaded from the mirror."""

    error_code = "DATABASE_CORRUPT"


class LockedError(DatabaseError):
    """Another process holds the advisory mirror lock."""

    error_code = "DATABASE_LOCKED"

    def __init__(self, lock_path: Any) -> None:
        super().__init__(
            f"Advisory database is locked by another process ({lock_path})",
            details={"lock_path": str(lock_path)},
        )


class LockfileError(CrateShieldError):
    """Base class for lockfile failures."""

    error_code = "LOCKFILE_ERROR"


class LockfileNotFoundError(LockfileError):
    """The lockfile path does not exist."""

    error_code = "LOCKFILE_NOT_FOUND"

    def __init__(self, path: Any) -> None:
        super().__init__(f"Lockfile not found: {path}", details={"path": str(path)})


class LockfileParseError(LockfileError):
    """The lockfile content does not conform to the Cargo.lock format."""

    error_code = "LOCKFILE_PARSE_ERROR"
