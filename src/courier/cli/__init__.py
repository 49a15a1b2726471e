"""
CLI layer for courier.

Provides a Typer application for operators: run the delivery worker,
inspect and replay dead letters, read the audit trail and enqueue alerts
by hand. Business logic lives in ``courier.execution``; this package
handles only argument parsing and terminal output.

Entry point::

    courier --help
"""

from courier.cli.app import app

__all__ = ["app"]
