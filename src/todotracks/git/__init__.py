"""Git access for todo-tracks.

Provides the command-style backend interface, a GitPython implementation,
an in-memory implementation for tests, and parsers for git's output.
"""

from .base import VersionControlBackend
from .command import GitCommandBackend
from .memory import InMemoryBackend, MemoryCommit, blob_id_for

__all__ = [
    "VersionControlBackend",
    "GitCommandBackend",
    "InMemoryBackend",
    "MemoryCommit",
    "blob_id_for",
]
