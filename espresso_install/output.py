"""Console output helpers and logging setup."""

import logging
import sys

import click


def setup_logging(debug: bool = False) -> None:
    """Configure root logging; DEBUG with --debug, WARNING otherwise."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def ohai(message: str) -> None:
    click.secho("==> ", fg="blue", bold=True, nl=False)
    click.secho(message, bold=True)


def warn(message: str) -> None:
    click.secho("Warning", fg="red", bold=True, nl=False, err=True)
    click.echo(f": {message.rstrip()}", err=True)


def ring_bell() -> None:
    if sys.stdout.isatty():
        click.echo("\a", nl=False)


__all__ = ["setup_logging", "ohai", "warn", "ring_bell"]
