"""
kodegen-setup — CLI entrypoint.

Usage:
    kodegen-setup                 # install (default action)
    kodegen-setup --dry-run
    kodegen-setup status --json
    python -m kodegen_setup.main --help
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from kodegen_setup import __version__
from kodegen_setup.core.observability.logging_config import setup_logging


def _load_config(ctx: click.Context):
    from kodegen_setup.core.config.loader import ConfigError, load_config

    try:
        return load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"✗ {e}", fg="red", err=True)
        sys.exit(1)


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="kodegen-setup")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="Path to installer.yml (default: auto-detect).",
)
@click.option("--force", is_flag=True, help="Reinstall even if KODEGEN is already current.")
@click.option("--skip-deps", is_flag=True, help="Never install system dependencies.")
@click.option("--no-sudo", is_flag=True, help="Never elevate privileges (implies --skip-deps).")
@click.option("--dry-run", is_flag=True, help="Report what would happen, change nothing.")
@click.option(
    "--strategy",
    type=click.Choice(["auto", "prebuilt", "source"]),
    default="auto",
    show_default=True,
    help="How to obtain the binaries.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    force: bool,
    skip_deps: bool,
    no_sudo: bool,
    dry_run: bool,
    strategy: str,
) -> None:
    """KODEGEN installer — set up the kodegen MCP server and daemon."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("KODEGEN_LOG_LEVEL", "WARNING")

    from kodegen_setup.core.services.installer.detection.environment import (
        default_diagnostics_dir,
    )

    setup_logging(
        level=level,
        log_file=os.environ.get("KODEGEN_LOG_FILE"),
        log_file_level=os.environ.get("KODEGEN_LOG_FILE_LEVEL"),
        log_dir=default_diagnostics_dir(os.environ),
    )

    if ctx.invoked_subcommand is not None:
        return

    from kodegen_setup.core.services.installer import InstallOptions, run_install
    from kodegen_setup.ui.cli.console import ClickInteraction

    config = _load_config(ctx)
    console = ClickInteraction(quiet=quiet)
    if not quiet:
        click.secho(f"\n⚡ KODEGEN installer {__version__}\n", fg="cyan", bold=True)

    result = run_install(
        InstallOptions(
            force=force,
            skip_deps=skip_deps,
            no_sudo=no_sudo,
            dry_run=dry_run,
            strategy=strategy,
        ),
        config=config,
        interaction=console,
    )

    for warning in result.warnings:
        if not quiet:
            click.secho(f"⚠ {warning}", fg="yellow")
    sys.exit(result.exit_code)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show what is installed and which dependencies are missing."""
    from kodegen_setup.core.services.installer import get_status

    config = _load_config(ctx)
    report = get_status(config=config)

    if as_json:
        click.echo(json.dumps(report, indent=2))
        sys.exit(1 if report.get("error") else 0)

    if report.get("error"):
        click.secho(f"✗ {report['error']['message']}", fg="red")
        sys.exit(1)

    platform = report["platform"]
    click.secho(f"\n📋 {platform['target_triple']} ({platform['os_family']})", fg="cyan", bold=True)

    click.secho("   Binaries:", fg="white", bold=True)
    for name, info in report["binaries"].items():
        if info["present"]:
            click.echo(f"     ✓ {name} {info['version'] or '?'}  → {info['path']}")
        else:
            click.echo(f"     ✗ {name} (not installed)")

    deps = report["dependencies"]
    click.secho(f"   Dependencies ({deps['manager']}):", fg="white", bold=True)
    if deps["missing"]:
        click.echo(f"     missing: {', '.join(deps['missing'])}")
    else:
        click.echo("     all present")

    if report.get("ci"):
        click.echo(f"   CI detected: {', '.join(report['ci'])}")
    click.echo()


def main() -> None:
    """Console-script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
