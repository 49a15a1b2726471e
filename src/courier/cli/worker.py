"""
CLI: ``courier worker`` — run the delivery worker.
"""

from __future__ import annotations

import asyncio

import typer

from courier.cli.utils import console, output_dict, resolve_settings

app = typer.Typer(no_args_is_help=True)


@app.command("start")
def start(
    database: str | None = typer.Option(None, "--database", "-d", help="SQLite database path"),  # noqa: UP007
    poll_interval: float | None = typer.Option(  # noqa: UP007
        None, "--poll-interval", help="Seconds to sleep when the queue is empty"
    ),
    batch_size: int | None = typer.Option(None, "--batch-size", help="Max messages per batch"),  # noqa: UP007
    once: bool = typer.Option(False, "--once", help="Process a single batch and exit"),
) -> None:
    """Start the delivery worker.

    The worker receives batches from the inbound queue, delivers each alert
    to its destinations and re-enqueues, acknowledges or dead-letters it.

    Example::

        courier worker start --poll-interval 2
        courier worker start --database /data/courier.db --once
    """
    from courier.core.logging import configure_logging
    from courier.execution.worker import build_worker

    settings = resolve_settings(database)
    overrides = {}
    if poll_interval is not None:
        overrides["poll_interval_secs"] = poll_interval
    if batch_size is not None:
        overrides["batch_size"] = batch_size
    if overrides:
        settings = settings.model_copy(update=overrides)

    configure_logging(level=settings.log_level, json_format=settings.json_logs)
    worker = build_worker(settings)

    if once:
        report = asyncio.run(_run_once(worker))
        output_dict(report.to_dict(), title="Batch")
        return

    console.print(
        f"[bold green]Starting courier worker[/bold green] "
        f"(poll={settings.poll_interval_secs}s, batch={settings.batch_size}, db={settings.database_path})"
    )
    try:
        worker.start()
    except KeyboardInterrupt:
        console.print("\n[yellow]Worker stopped by user[/yellow]")
    output_dict(worker.stats.to_dict(), title="Totals")


async def _run_once(worker):
    try:
        return await worker.run_once()
    finally:
        await worker.close()
