"""
CLI: ``courier audit`` — delivery attempt audit trail.
"""

from __future__ import annotations

import typer

from courier.cli.utils import console, get_connection, output_json, output_rows

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_attempts(
    alert_id: str = typer.Argument(..., help="Alert ID"),
    database: str | None = typer.Option(None, "--database", "-d"),  # noqa: UP007
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List every delivery attempt for one alert."""
    from courier.execution.ledger import AuditLedger

    ledger = AuditLedger(get_connection(database))
    attempts = ledger.list_for_alert(alert_id)
    if json_out:
        output_json({"attempts": [a.to_dict() for a in attempts], "summary": ledger.summary(alert_id)})
        return

    rows = [
        {
            "cycle": a.dispatch_cycle,
            "destination": a.destination_id,
            "type": a.destination_type.value if a.destination_type else "",
            "outcome": a.outcome.value,
            "status": a.status_code,
            "message": a.message,
            "at": a.attempted_at.isoformat(timespec="seconds"),
        }
        for a in attempts
    ]
    output_rows(rows, title=f"Attempts for {alert_id}")
    if attempts:
        counts = ledger.summary(alert_id)
        console.print("\n[dim]" + "  ".join(f"{k}={v}" for k, v in counts.items()) + "[/dim]")
