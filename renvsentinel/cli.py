"""CLI entry point: renvsentinel.

Subcommands:
    renvsentinel check                    # strict scan, auto-fix, prune (defaults)
    renvsentinel check --no-fix -v        # report only, list every missing package
    renvsentinel system-deps              # R packages whose apt libraries are missing
    renvsentinel sync-renv rocker/r-ver:4.4.2   # pin renv to the image's version
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import NoReturn

import click

from renvsentinel.config import ValidatorConfig, load_config
from renvsentinel.core.logging import setup_logging
from renvsentinel.engines.dependency_validator.lockfile import Lockfile
from renvsentinel.engines.dependency_validator.models import ScanScope, ValidationOptions
from renvsentinel.engines.dependency_validator.reconciler import Reconciler
from renvsentinel.engines.dependency_validator.registry import RegistryValidator
from renvsentinel.engines.dependency_validator.report import render_report
from renvsentinel.engines.dependency_validator.system_deps import (
    check_dockerfile,
    render_instructions,
)
from renvsentinel.exceptions import RenvSentinelError


def _fail(exc: RenvSentinelError) -> NoReturn:
    click.echo(f"Error: {exc}", err=True)
    for step in exc.remediation:
        click.echo(f"  {step}", err=True)
    sys.exit(1)


def _load(project: Path, config_path: Path | None) -> ValidatorConfig:
    try:
        return load_config(project, config_path)
    except RenvSentinelError as e:
        _fail(e)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging and full package lists")
@click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="R project directory",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: <project>/.renvsentinel.toml)",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, project: Path, config_path: Path | None) -> None:
    """renvsentinel: validate R package dependencies without R on the host."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["project"] = project
    ctx.obj["config"] = _load(project, config_path)


@main.command("check")
@click.option(
    "--strict/--no-strict",
    default=True,
    help="Also scan tests/, vignettes/ and inst/ (default: strict)",
)
@click.option("--fix/--no-fix", default=True, help="Add missing packages to DESCRIPTION and renv.lock")
@click.option(
    "--prune/--no-prune",
    default=None,
    help="Remove DESCRIPTION entries unused in code (default: same as --fix)",
)
@click.pass_context
def check(ctx: click.Context, strict: bool, fix: bool, prune: bool | None) -> None:
    """Reconcile code usage, DESCRIPTION and renv.lock."""
    project: Path = ctx.obj["project"]
    config: ValidatorConfig = ctx.obj["config"]
    options = ValidationOptions(
        scope=ScanScope.STRICT if strict else ScanScope.STANDARD,
        auto_fix=fix,
        prune=fix if prune is None else prune,
        verbose=ctx.obj["verbose"],
    )

    try:
        with RegistryValidator.from_config(config) as validator:
            report = Reconciler(project, config, validator).run(options)
    except RenvSentinelError as e:
        _fail(e)

    for line in render_report(report, verbose=options.verbose):
        click.echo(line)
    sys.exit(report.verdict.exit_code)


@main.command("system-deps")
@click.option(
    "--dockerfile",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Dockerfile to inspect (default: <project>/Dockerfile)",
)
@click.option("--strict/--no-strict", default=True, help="Scan scope for code packages")
@click.pass_context
def system_deps(ctx: click.Context, dockerfile: Path | None, strict: bool) -> None:
    """Check that system libraries for native R packages are in the Dockerfile."""
    project: Path = ctx.obj["project"]
    config: ValidatorConfig = ctx.obj["config"]
    dockerfile = dockerfile or project / "Dockerfile"

    with RegistryValidator.from_config(config) as validator:
        scanned = Reconciler(project, config, validator).scan(
            ScanScope.STRICT if strict else ScanScope.STANDARD
        )

    missing = check_dockerfile(scanned.names, dockerfile)
    if missing is None:
        click.echo(f"Dockerfile not found: {dockerfile} (skipping system dependency check)")
        return
    if not missing:
        click.echo("All R packages have required system dependencies")
        return
    for line in render_instructions(missing):
        click.echo(line)
    sys.exit(1)


@main.command("sync-renv")
@click.argument("image")
@click.pass_context
def sync_renv(ctx: click.Context, image: str) -> None:
    """Pin renv in renv.lock to the version shipped in IMAGE."""
    project: Path = ctx.obj["project"]
    config: ValidatorConfig = ctx.obj["config"]
    lockfile = Lockfile(
        project / config.lockfile_filename,
        default_r_version=config.default_r_version,
        default_repository_name=config.default_repository_name,
        default_repository_url=config.default_repository_url,
    )
    try:
        version = lockfile.sync_runtime_version(image)
    except RenvSentinelError as e:
        _fail(e)
    if version is None:
        click.echo("renv version not updated (see warnings above)")
        return
    click.echo(f"Updated renv.lock to use renv {version} from {image}")
