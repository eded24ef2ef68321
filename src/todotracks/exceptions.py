"""Exceptions for todo-tracks.

Two families matter to callers: ``ValidationError`` for bad user-supplied
identifiers (recoverable, reported back to the caller) and ``InternalError``
for everything the tracker derives itself (backend failures, unparseable
backend output). The serving layer decides what to do with each.
"""

from collections.abc import Sequence


class TodoTracksError(Exception):
    """Base exception for todo-tracks."""

    pass


class ValidationError(TodoTracksError):
    """Raised when a user-supplied revision, path or line number is invalid."""

    pass


class RepositoryNotFoundError(TodoTracksError):
    """Path is not a valid git repository."""

    pass


class ConfigurationError(TodoTracksError):
    """Raised when the TODO pattern or an exclude pattern does not compile."""

    pass


class InternalError(TodoTracksError):
    """Raised when data the tracker relies on is missing or inconsistent."""

    pass


class BackendError(InternalError):
    """A version-control command exited with a failure status."""

    def __init__(
        self, args: Sequence[str], status: int | str | None, stderr: str = ""
    ) -> None:
        self.command = list(args)
        self.status = status
        self.stderr = stderr
        super().__init__(
            f"Command {' '.join(self.command)!r} failed with status {status}: "
            f"{stderr.strip()}"
        )


class MalformedOutputError(InternalError):
    """Backend output did not follow the expected grammar."""

    pass
