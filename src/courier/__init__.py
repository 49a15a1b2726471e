"""
Courier - alert delivery engine.

Delivers triggered security alerts to user-configured destinations with
at-least-once, bounded-time retries and a dead-letter path.

- courier.core: errors, logging, settings, hashing, schema
- courier.framework: alert model, senders, destination directory
- courier.execution: dispatcher, retry controller, queue, intake, worker
"""

__version__ = "0.1.0"
