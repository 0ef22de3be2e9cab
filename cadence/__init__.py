"""Cadence: recurring task and habit engine behind a FastAPI service."""

__version__ = "1.0.0"
