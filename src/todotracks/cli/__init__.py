"""Command line interface for todo-tracks."""
