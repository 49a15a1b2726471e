"""Delivery framework: alert model, destination senders and the destination directory."""
