"""
Root Typer application for the reconverge CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from reconverge import __version__

app = Typer(
    name="reconverge",
    help="reconverge: retrying executor and multi-pass convergence driver.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"reconverge {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """reconverge CLI: try the executor and driver on synthetic data."""


from reconverge.cli.demo import demo  # noqa: E402

app.command("demo")(demo)
