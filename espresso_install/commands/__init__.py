"""CLI command definitions for espresso-install."""

import click

from espresso_install.commands.install import install


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--debug", is_flag=True, help="Enable debug output for troubleshooting")
@click.pass_context
def cli(ctx, debug):
    """EspressoLabs Agent Installer."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


cli.add_command(install)

__all__ = ["cli"]


if __name__ == "__main__":
    cli()
