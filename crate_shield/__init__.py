"""CrateShield - Audit Cargo.lock files against a local security advisory database."""

__version__ = "0.1.0"

from .advisories.database import AdvisoryDatabase
from .advisories.models import AdvisoryRecord
from .auditor import Auditor
from .config.settings import AuditConfig
from .core.matcher import VulnerabilityMatcher
from .core.parsers import CargoLockParser, Dependency
from .core.report import ExitCode, Report, ReportBuilder
from .output.formatters import ConsoleFormatter, JSONFormatter

__all__ = [
    "AdvisoryDatabase",
    "AdvisoryRecord",
    "Auditor",
    "AuditConfig",
    "CargoLockParser",
    "ConsoleFormatter",
    "Dependency",
    "ExitCode",
    "JSONFormatter",
    "Report",
    "ReportBuilder",
    "VulnerabilityMatcher",
]
