"""Recurrence, spawning, completion and calendar services."""
