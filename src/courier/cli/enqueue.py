"""
CLI: ``courier enqueue`` — submit alerts from a JSON file.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer

from courier.cli.utils import console, fail, get_connection, resolve_settings


def enqueue(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON alert or list of alerts"),
    database: str | None = typer.Option(None, "--database", "-d"),  # noqa: UP007
) -> None:
    """Enqueue alerts as fresh Pending tasks."""
    from courier.execution.intake import enqueue_alert
    from courier.execution.queue import SqliteAlertQueue
    from courier.framework.alerts.protocol import Alert

    try:
        data = json.loads(file.read_text(encoding="utf-8"))
        records = data if isinstance(data, list) else [data]
        alerts = [Alert.from_dict(r) for r in records]
    except (json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as e:
        fail(f"Invalid alert file {file}: {e!r}", code="PAYLOAD")

    settings = resolve_settings(database)
    queue = SqliteAlertQueue(
        get_connection(database),
        visibility_timeout_seconds=settings.visibility_timeout_secs,
        max_receive_count=settings.max_receive_count,
    )

    async def _enqueue_all() -> list[str]:
        return [await enqueue_alert(queue, alert) for alert in alerts]

    for alert, message_id in zip(alerts, asyncio.run(_enqueue_all())):
        console.print(f"[green]Enqueued[/green] {alert.alert_id} ({message_id})")
