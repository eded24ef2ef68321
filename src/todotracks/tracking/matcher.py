"""TODO pattern and path exclusion rules."""

import re
from collections.abc import Iterable

from todotracks.exceptions import ConfigurationError

DEFAULT_TODO_REGEX = r"(^|[^a-zA-Z])(t|T)(o|O)(d|D)(o|O)[^a-zA-Z]"


def compile_pattern(pattern: str, what: str = "pattern") -> re.Pattern[str]:
    """Compile ``pattern`` or raise ConfigurationError naming ``what`` it is."""
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(f"Invalid {what} {pattern!r}: {e}") from e


def split_patterns(comma_separated: str) -> tuple[str, ...]:
    """Split a comma-separated pattern list, dropping empty entries."""
    return tuple(p for p in comma_separated.split(",") if p)


class PathFilter:
    """A set of path exclusion regexes (searched, not anchored)."""

    def __init__(self, patterns: Iterable[str] | str | None = None) -> None:
        if patterns is None:
            patterns = ()
        elif isinstance(patterns, str):
            patterns = split_patterns(patterns)
        self.patterns: tuple[str, ...] = tuple(p for p in patterns if p)
        self._compiled = [compile_pattern(p, "exclude path regex") for p in self.patterns]

    @property
    def cache_key(self) -> frozenset[str]:
        return frozenset(self.patterns)

    def includes(self, path: str) -> bool:
        return not any(regex.search(path) for regex in self._compiled)

    def __repr__(self) -> str:
        return f"PathFilter({list(self.patterns)!r})"


class PatternMatcher:
    """The TODO regex plus the default path exclusions of one repository.

    Both are compiled once, here; a bad regex raises ConfigurationError at
    construction and never while scanning.
    """

    def __init__(
        self,
        todo_regex: str,
        exclude_paths: Iterable[str] | str | None = None,
    ) -> None:
        self.todo_regex = todo_regex
        self._todo = compile_pattern(todo_regex, "TODO regex")
        self.excludes = PathFilter(exclude_paths)

    def matches(self, line: str) -> bool:
        return self._todo.search(line) is not None
