"""
SQLite tables shared by the courier components.

Architecture:
    ::

        COURIER_TABLES
        ┌───────────────────────────────────────────────────────────┐
        │ destinations   → courier_destinations      (read-only here)│
        │ attempts       → courier_delivery_attempts (append-only)   │
        │ dead_letters   → courier_dead_letters                      │
        │ alert_queue    → courier_alert_queue                       │
        └───────────────────────────────────────────────────────────┘

``courier_destinations`` is owned by the configuration service; the engine
only reads it. The DDL lives here so tests and local deployments can
create the whole schema in one call.
"""

COURIER_TABLES = {
    "destinations": "courier_destinations",
    "attempts": "courier_delivery_attempts",
    "dead_letters": "courier_dead_letters",
    "alert_queue": "courier_alert_queue",
}

COURIER_DDL = {
    "destinations": """
        CREATE TABLE IF NOT EXISTS courier_destinations (
            destination_id TEXT PRIMARY KEY,
            display_name TEXT NOT NULL,
            destination_type TEXT NOT NULL,
            config TEXT NOT NULL DEFAULT '{}',
            default_for_severities TEXT NOT NULL DEFAULT '[]',
            verified INTEGER NOT NULL DEFAULT 1,
            last_modified TEXT
        )
    """,
    "attempts": """
        CREATE TABLE IF NOT EXISTS courier_delivery_attempts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            alert_id TEXT NOT NULL,
            destination_id TEXT NOT NULL,
            destination_type TEXT,
            attempted_at TEXT NOT NULL,
            outcome TEXT NOT NULL,
            status_code INTEGER,
            message TEXT,
            dispatch_cycle INTEGER NOT NULL DEFAULT 1
        )
    """,
    "attempts_index": """
        CREATE INDEX IF NOT EXISTS idx_courier_attempts_alert
        ON courier_delivery_attempts (alert_id, attempted_at)
    """,
    "dead_letters": """
        CREATE TABLE IF NOT EXISTS courier_dead_letters (
            id TEXT PRIMARY KEY,
            alert_id TEXT NOT NULL,
            task TEXT NOT NULL,
            reason TEXT NOT NULL,
            source TEXT NOT NULL DEFAULT 'engine',
            pending_destination_ids TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL,
            replay_count INTEGER NOT NULL DEFAULT 0,
            last_replayed_at TEXT,
            resolved_at TEXT,
            resolved_by TEXT
        )
    """,
    "alert_queue": """
        CREATE TABLE IF NOT EXISTS courier_alert_queue (
            message_id TEXT PRIMARY KEY,
            body TEXT NOT NULL,
            visible_at REAL NOT NULL,
            receive_count INTEGER NOT NULL DEFAULT 0,
            receipt_handle TEXT,
            sent_at TEXT NOT NULL,
            received_at TEXT
        )
    """,
    "alert_queue_index": """
        CREATE INDEX IF NOT EXISTS idx_courier_alert_queue_visible
        ON courier_alert_queue (visible_at)
    """,
}


def create_core_tables(conn) -> None:
    """
    Create all courier tables.

    Safe to call multiple times (CREATE IF NOT EXISTS).
    """
    for _name, ddl in COURIER_DDL.items():
        conn.execute(ddl)
    conn.commit()


__all__ = ["COURIER_TABLES", "COURIER_DDL", "create_core_tables"]
