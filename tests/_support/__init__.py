"""Test support utilities for courier tests. See ``delivery.py``."""
