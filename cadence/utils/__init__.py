"""Logging, metrics and user-local date helpers."""
