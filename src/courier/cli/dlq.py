"""
CLI: ``courier dlq`` — dead-letter commands.
"""

from __future__ import annotations

import asyncio

import typer

from courier.cli.utils import console, fail, get_connection, output_dict, output_rows, resolve_settings

app = typer.Typer(no_args_is_help=True)


def _summary_row(entry) -> dict:
    return {
        "id": entry.id,
        "alert_id": entry.alert_id,
        "source": entry.source.value,
        "pending": ",".join(entry.pending_destination_ids),
        "reason": entry.reason,
        "created_at": entry.created_at.isoformat(timespec="seconds"),
        "replays": entry.replay_count,
        "resolved_by": entry.resolved_by,
    }


@app.command("list")
def list_dead_letters(
    include_resolved: bool = typer.Option(False, "--all", "-a", help="Include resolved entries"),
    limit: int = typer.Option(50, "--limit", "-n"),
    database: str | None = typer.Option(None, "--database", "-d"),  # noqa: UP007
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List dead-letter entries, newest first."""
    from courier.execution.dlq import DeadLetterStore

    store = DeadLetterStore(get_connection(database))
    entries = store.list_all(include_resolved=include_resolved, limit=limit)
    output_rows([_summary_row(e) for e in entries], as_json=json_out, title="Dead Letters")
    if not json_out:
        console.print(f"\n[dim]{store.count_unresolved()} unresolved[/dim]")


@app.command("show")
def show(
    dead_letter_id: str = typer.Argument(..., help="Dead-letter entry ID"),
    database: str | None = typer.Option(None, "--database", "-d"),  # noqa: UP007
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show one dead-letter entry including its task."""
    from courier.execution.dlq import DeadLetterStore

    entry = DeadLetterStore(get_connection(database)).get(dead_letter_id)
    if entry is None:
        fail(f"Dead letter not found: {dead_letter_id}", code="NOT_FOUND")
    output_dict(entry.to_dict(), as_json=json_out, title="Dead Letter")


@app.command("replay")
def replay(
    dead_letter_id: str = typer.Argument(..., help="Dead-letter entry ID"),
    replayed_by: str | None = typer.Option(None, "--by", help="Operator identity"),  # noqa: UP007
    database: str | None = typer.Option(None, "--database", "-d"),  # noqa: UP007
) -> None:
    """Replay a dead-letter entry as a fresh alert."""
    from courier.core.errors import PayloadError
    from courier.execution.dlq import DeadLetterStore
    from courier.execution.queue import SqliteAlertQueue

    settings = resolve_settings(database)
    conn = get_connection(database)
    store = DeadLetterStore(conn)
    queue = SqliteAlertQueue(
        conn,
        visibility_timeout_seconds=settings.visibility_timeout_secs,
        max_receive_count=settings.max_receive_count,
        dead_letters=store,
    )
    try:
        task = asyncio.run(store.replay(dead_letter_id, queue, replayed_by=replayed_by))
    except PayloadError as e:
        fail(f"Stored task cannot be replayed: {e.message}", code="PAYLOAD")
    if task is None:
        fail(f"Dead letter not found or already resolved: {dead_letter_id}", code="NOT_FOUND")

    targets = ", ".join(task.pending_destination_ids) if task.pending_destination_ids is not None else "re-resolve"
    console.print(f"[green]Replayed[/green] alert {task.alert_id} → {targets}")


@app.command("resolve")
def resolve(
    dead_letter_id: str = typer.Argument(..., help="Dead-letter entry ID"),
    resolved_by: str | None = typer.Option(None, "--by", help="Operator identity"),  # noqa: UP007
    database: str | None = typer.Option(None, "--database", "-d"),  # noqa: UP007
) -> None:
    """Mark a dead-letter entry as handled without replaying it."""
    from courier.execution.dlq import DeadLetterStore

    if not DeadLetterStore(get_connection(database)).resolve(dead_letter_id, resolved_by=resolved_by):
        fail(f"Dead letter not found or already resolved: {dead_letter_id}", code="NOT_FOUND")
    console.print(f"[green]Resolved[/green] {dead_letter_id}")


@app.command("purge")
def purge(
    days: int = typer.Option(90, "--days", help="Delete resolved entries older than this"),
    database: str | None = typer.Option(None, "--database", "-d"),  # noqa: UP007
) -> None:
    """Delete old resolved entries."""
    from courier.execution.dlq import DeadLetterStore

    deleted = DeadLetterStore(get_connection(database)).cleanup_resolved(days=days)
    console.print(f"Deleted {deleted} resolved entr{'y' if deleted == 1 else 'ies'}")
