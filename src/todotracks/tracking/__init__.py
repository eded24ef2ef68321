"""TODO extraction, aggregation and branch status tracking."""

from .aggregator import RevisionTodoAggregator
from .cache import MemoCache
from .discovery import discover_repositories, open_repository
from .extractor import BlobTodoExtractor
from .matcher import DEFAULT_TODO_REGEX, PathFilter, PatternMatcher
from .repository import TodoRepository
from .status import BranchStatusResolver

__all__ = [
    "DEFAULT_TODO_REGEX",
    "BlobTodoExtractor",
    "BranchStatusResolver",
    "MemoCache",
    "PathFilter",
    "PatternMatcher",
    "RevisionTodoAggregator",
    "TodoRepository",
    "discover_repositories",
    "open_repository",
]
