"""todo-tracks configuration.

All settings can be overridden via environment variables with the
TODOTRACKS_ prefix, e.g. TODOTRACKS_PORT=9000.
"""

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from todotracks.tracking.matcher import DEFAULT_TODO_REGEX, split_patterns


def _compile(pattern: str) -> None:
    try:
        re.compile(pattern)
    except re.error as e:
        raise ValueError(f"invalid regular expression {pattern!r}: {e}") from e


class TrackerSettings(BaseSettings):
    """Server and tracker configuration."""

    model_config = SettingsConfigDict(env_prefix="TODOTRACKS_")

    # Server settings
    host: str = Field(
        default="127.0.0.1",
        description="HTTP server host",
    )
    port: int = Field(
        default=8080,
        description="HTTP server port",
    )
    log_level: str = Field(
        default="info",
        description="Logging level (debug, info, warning, error)",
    )
    log_format: str = Field(
        default="console",
        description="Log output format: console or json",
    )

    # Tracker settings
    todo_regex: str = Field(
        default=DEFAULT_TODO_REGEX,
        description="Regular expression (Python re syntax) matching TODO lines",
    )
    exclude_paths: str = Field(
        default="",
        description="Comma-separated regular expressions of paths to skip",
    )
    max_concurrency: int = Field(
        default=16,
        ge=1,
        description="Maximum number of files scanned at once per repository",
    )
    context_lines_before: int = Field(
        default=5,
        ge=0,
        description="Lines of context shown before a TODO",
    )
    context_lines_after: int = Field(
        default=5,
        ge=0,
        description="Lines of context shown after a TODO",
    )
    warm_cache: bool = Field(
        default=True,
        description="Scan all branch heads in the background at startup",
    )

    @field_validator("todo_regex")
    @classmethod
    def _check_todo_regex(cls, value: str) -> str:
        _compile(value)
        return value

    @field_validator("exclude_paths")
    @classmethod
    def _check_exclude_paths(cls, value: str) -> str:
        for pattern in split_patterns(value):
            _compile(pattern)
        return value

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value not in ("console", "json"):
            raise ValueError(f"log_format must be 'console' or 'json', got {value!r}")
        return value


# Module-level singleton
settings = TrackerSettings()
