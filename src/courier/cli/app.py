"""
Root Typer application for the courier CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="courier",
    help="courier — alert delivery dispatch and retry engine.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        from courier import __version__

        try:
            v = pkg_version("courier")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"courier {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """courier CLI — run the worker, inspect dead letters and the audit trail."""


# ── Sub-command registration ─────────────────────────────────────────────

from courier.cli.audit import app as audit_app  # noqa: E402
from courier.cli.dlq import app as dlq_app  # noqa: E402
from courier.cli.enqueue import enqueue  # noqa: E402
from courier.cli.worker import app as worker_app  # noqa: E402

app.add_typer(worker_app, name="worker", help="Run the delivery worker.")
app.add_typer(dlq_app, name="dlq", help="Dead-letter inspection and replay.")
app.add_typer(audit_app, name="audit", help="Delivery attempt audit trail.")
app.command("enqueue")(enqueue)
