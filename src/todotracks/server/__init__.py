"""HTTP dashboard API for todo-tracks."""

from .app import Dashboard

__all__ = ["Dashboard"]
