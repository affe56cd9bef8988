"""Main CLI interface for CrateShield."""

from enum import Enum
from pathlib import Path
from typing import List, Optional
import typer
from rich.console import Console

from .. import __version__
from ..auditor import Auditor
from ..config.settings import (
    AuditConfig,
    OutputFormat,
    load_config_file,
    merge,
    parse_ignore_list,
)
from ..core.errors import CrateShieldError
from ..core.report import ExitCode
from ..output.formatters import ConsoleFormatter, JSONFormatter
from ..utils.logging import get_logger, setup_logging
from ..utils.performance import PerformanceMonitor

app = typer.Typer(
    name="crateshield",
    help="Audit Cargo.lock files for crates with security vulnerabilities",
    add_completion=False
)

logger = get_logger("CLI")


class ColorChoice(str, Enum):
    AUTO = "auto"
    ALWAYS = "always"
    NEVER = "never"


def make_console(color: ColorChoice = ColorChoice.AUTO, stderr: bool = False) -> Console:
    """Create a rich console honoring the --color choice."""
    if color is ColorChoice.ALWAYS:
        return Console(stderr=stderr, force_terminal=True)
    if color is ColorChoice.NEVER:
        return Console(stderr=stderr, color_system=None)
    return Console(stderr=stderr)


def build_overlay(
    db: Optional[Path] = None,
    file: Optional[str] = None,
    ignore: Optional[List[str]] = None,
    no_fetch: bool = False,
    stale: bool = False,
    target_arch: Optional[str] = None,
    target_os: Optional[str] = None,
    url: Optional[str] = None,
    quiet: bool = False,
    output_json: bool = False,
    deny_warnings: bool = False,
) -> AuditConfig:
    """Turn command-line values into a configuration overlay.

    Raises:
        ConfigurationError: If an ignore id is malformed
    """
    return AuditConfig(
        db_path=db.expanduser() if db else None,
        db_url=url,
        lockfile=file,
        ignore=parse_ignore_list(ignore or []),
        no_fetch=no_fetch,
        allow_stale=stale,
        target_arch=target_arch,
        target_os=target_os,
        output_format=OutputFormat.JSON if output_json else None,
        quiet=quiet,
        deny_warnings=deny_warnings,
    )


def run_audit(
    config: AuditConfig,
    auditor: Optional[Auditor] = None,
    verbose: bool = False,
    color: ColorChoice = ColorChoice.AUTO,
) -> ExitCode:
    """Run an audit and render its outcome.

    This is the only place where pipeline errors become an exit code.
    """
    console_formatter = ConsoleFormatter(make_console(color), quiet=config.quiet)
    error_formatter = ConsoleFormatter(make_console(color, stderr=True))
    json_formatter = JSONFormatter()
    auditor = auditor or Auditor(config, performance_monitor=PerformanceMonitor())

    try:
        result = auditor.audit()
    except CrateShieldError as e:
        logger.debug(f"Audit failed with {e.error_code}")
        if config.output_json:
            typer.echo(json_formatter.dump_error(e))
        else:
            error_formatter.format_error(e)
        return ExitCode.ERROR

    if config.output_json:
        typer.echo(json_formatter.dump(result.report, result.database_stats))
    else:
        stats = result.database_stats
        console_formatter.status(f"Loaded {stats['advisories']} security advisories (from {stats['path']})")
        console_formatter.format_report(result.report)

    if verbose:
        auditor.performance_monitor.print_summary()

    return result.exit_code


@app.command()
def audit(
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        "-D",
        help="Advisory database git repo path (default: ~/.cargo/advisory-db)"
    ),
    file: Optional[str] = typer.Option(
        None,
        "--file",
        "-f",
        help="Cargo lockfile to inspect (or `-` for STDIN, default: Cargo.lock)"
    ),
    ignore: Optional[List[str]] = typer.Option(
        None,
        "--ignore",
        metavar="ADVISORY_ID",
        help="Advisory id to ignore (can be specified multiple times)"
    ),
    no_fetch: bool = typer.Option(
        False,
        "--no-fetch",
        "-n",
        help="Do not perform a git fetch on the advisory DB"
    ),
    stale: bool = typer.Option(
        False,
        "--stale",
        help="Allow stale database"
    ),
    target_arch: Optional[str] = typer.Option(
        None,
        "--target-arch",
        help="Filter vulnerabilities by CPU (default: no filter)"
    ),
    target_os: Optional[str] = typer.Option(
        None,
        "--target-os",
        help="Filter vulnerabilities by OS (default: no filter)"
    ),
    url: Optional[str] = typer.Option(
        None,
        "--url",
        "-u",
        help="URL for advisory database git repo"
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Avoid printing unnecessary information"
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        help="Output report in JSON format"
    ),
    deny_warnings: bool = typer.Option(
        False,
        "--deny-warnings",
        help="Exit with an error on informational advisories (unmaintained, notice)"
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Configuration file (default: ~/.cargo/audit.toml if present)"
    ),
    color: ColorChoice = typer.Option(
        ColorChoice.AUTO,
        "--color",
        "-c",
        case_sensitive=False,
        help="Color configuration: always, never or auto"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging"
    ),
) -> None:
    """Audit a Cargo.lock file against the advisory database."""
    try:
        overlay = build_overlay(
            db=db,
            file=file,
            ignore=ignore,
            no_fetch=no_fetch,
            stale=stale,
            target_arch=target_arch,
            target_os=target_os,
            url=url,
            quiet=quiet,
            output_json=output_json,
            deny_warnings=deny_warnings,
        )
        config = merge(load_config_file(config_path), overlay)
    except CrateShieldError as e:
        if output_json:
            typer.echo(JSONFormatter().dump_error(e))
        else:
            ConsoleFormatter(make_console(color, stderr=True)).format_error(e)
        raise typer.Exit(int(ExitCode.ERROR))

    setup_logging(verbose=verbose, quiet=config.quiet or config.output_json)

    exit_code = run_audit(config, verbose=verbose, color=color)
    raise typer.Exit(int(exit_code))


@app.command()
def version() -> None:
    """Show the CrateShield version."""
    typer.echo(f"crateshield {__version__}")


def main() -> None:
    """Main entry point for CrateShield CLI."""
    app()


if __name__ == "__main__":
    main()
