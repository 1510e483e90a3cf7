"""Install command implementation."""

import logging
import os
import sys

import click

from espresso_install.config import RunConfig, load_sources, resolve_interactive
from espresso_install.errors import InstallerError, format_stage_error
from espresso_install.orchestrator import Orchestrator, RunReport
from espresso_install.output import ohai, ring_bell, setup_logging, warn
from espresso_install.privilege import PrivilegeGate

_logging = logging.getLogger(__name__)


def _strip_quotes(value: str) -> str:
    return value.replace('"', "").replace("'", "").strip()


def _mask(secret: str) -> str:
    if len(secret) <= 4:
        return "****"
    return secret[:4] + "*" * (len(secret) - 4)


def _print_plan(config: RunConfig) -> None:
    ohai("Using the following values:")
    click.echo(f"    Backend Host: {config.backend_host}")
    click.echo(f"           Token: {_mask(config.token)}")
    ohai("This script will install:")
    click.echo("    - espresso-agent")
    click.echo("    - com.espressolabs.agent service")
    if config.install_jq:
        click.echo("    - jq")
    if config.install_extension:
        click.echo("    - Chrome Extension")
    if config.install_antivirus:
        click.echo("    - Bitdefender")


def _print_report(report: RunReport) -> None:
    result = report.result
    if result.prior_version:
        ohai(f"Upgraded espresso-agent {result.prior_version} -> {result.version}")
    ohai("Installation successful!")
    click.echo(f"    Install log: {result.log_path}")
    for outcome in report.components:
        if outcome.skipped:
            click.echo(f"    {outcome.name}: already installed, skipped")
        else:
            click.echo(f"    {outcome.name}: installed")
    for line in report.notes:
        click.echo(f"    {line}")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--backend-host", default="", help="The backend that the agent will connect to.")
@click.option("--token", default="", help="The token that the agent will use to authenticate.")
@click.option("--extension", is_flag=True, help="Install the Chrome Extension")
@click.option(
    "--bitdefender",
    is_flag=True,
    help="Install Bitdefender (default: do not install Bitdefender)",
)
@click.option("--no-jq", is_flag=True, help="Do not install jq (default: install jq)")
@click.option(
    "--keep-staging",
    is_flag=True,
    help="Keep the downloaded files after the run",
)
@click.pass_context
def install(
    ctx,
    backend_host: str,
    token: str,
    extension: bool,
    bitdefender: bool,
    no_jq: bool,
    keep_staging: bool,
):
    """Install or upgrade the EspressoLabs agent.

    Set NONINTERACTIVE=1 (or CI=1) to install without prompting.
    """
    debug = ctx.obj.get("debug", False) if ctx.obj else False
    setup_logging(debug)
    try:
        interactive, reason = resolve_interactive(os.environ, sys.stdin.isatty())
        if reason:
            if os.environ.get("NONINTERACTIVE"):
                ohai(reason)
            else:
                warn(reason)

        if interactive:
            ohai("Let's get started!")
            if not backend_host:
                backend_host = _strip_quotes(click.prompt("Enter backend host", default="", show_default=False))
            if not token:
                token = _strip_quotes(click.prompt("Enter token", default="", show_default=False))

        config = RunConfig.from_environment(
            backend_host,
            token,
            install_extension=extension,
            install_antivirus=bitdefender,
            install_jq=not no_jq,
            keep_staging=keep_staging,
        )
        sources = load_sources()
        # Checked before the plan so nobody confirms an install that cannot run.
        gate = PrivilegeGate(config.platform)
        gate.require()
        _print_plan(config)

        if config.interactive:
            ring_bell()
            if not click.confirm("\nContinue with installation?", default=True):
                sys.exit(1)

        report = Orchestrator(config, sources, gate=gate, progress=ohai).run()
    except InstallerError as e:
        _logging.debug("Run aborted", exc_info=True)
        click.echo(format_stage_error(e), err=True)
        sys.exit(1)

    _print_report(report)
    ring_bell()
