"""Configuration loading and merging for CrateShield."""

from .settings import AuditConfig, OutputFormat, load_config_file, merge, parse_advisory_id

__all__ = [
    "AuditConfig",
    "OutputFormat",
    "load_config_file",
    "merge",
    "parse_advisory_id",
]
