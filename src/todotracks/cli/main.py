"""todo-tracks CLI main entry point.

Output of the query commands is the same JSON the dashboard serves.
"""

import asyncio
import json
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import click

from todotracks import __version__
from todotracks.config import settings
from todotracks.exceptions import InternalError, TodoTracksError, ValidationError
from todotracks.git.parsing import is_revision_hash
from todotracks.models import MarkerId, Revision, to_wire
from todotracks.server.logging import configure_logging
from todotracks.tracking.discovery import discover_repositories, open_repository
from todotracks.tracking.matcher import PatternMatcher
from todotracks.tracking.repository import TodoRepository

T = TypeVar("T")


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, reporting tracker errors as CLI errors."""
    try:
        return asyncio.run(coro)
    except InternalError as e:
        raise click.ClickException(f"Internal error: {e}") from e
    except TodoTracksError as e:
        raise click.ClickException(str(e)) from e


def _matcher(
    todo_regex: str | None = None, exclude_paths: str | None = None
) -> PatternMatcher:
    if todo_regex is None:
        todo_regex = settings.todo_regex
    if exclude_paths is None:
        exclude_paths = settings.exclude_paths
    try:
        return PatternMatcher(todo_regex, exclude_paths)
    except TodoTracksError as e:
        raise click.ClickException(str(e)) from e


def _open(repo: str) -> TodoRepository:
    matcher = _matcher()
    try:
        return open_repository(repo, matcher, settings.max_concurrency)
    except TodoTracksError as e:
        raise click.ClickException(str(e)) from e


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2))


async def _resolve_revision(repository: TodoRepository, revision: str) -> Revision:
    """Accept a full hash or a branch name."""
    if is_revision_hash(revision):
        return await repository.validate_revision(revision)
    for alias in await repository.list_branches():
        if alias.branch == revision:
            return alias.revision
    raise ValidationError(f"Unknown branch or revision: {revision}")


@click.group()
@click.version_option(version=__version__, prog_name="todotracks")
def cli() -> None:
    """todo-tracks - follow TODOs across the branches of git repositories."""
    configure_logging(settings.log_level, settings.log_format)


@cli.command()
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Directory searched for git repositories (default: current directory)",
)
@click.option("--host", default=None, help="HTTP server host")
@click.option("--port", type=int, default=None, help="HTTP server port")
@click.option("--todo-regex", default=None, help="Regular expression matching TODO lines")
@click.option(
    "--exclude-paths",
    default=None,
    help="Comma-separated regular expressions of paths to skip",
)
def serve(
    root: Path,
    host: str | None,
    port: int | None,
    todo_regex: str | None,
    exclude_paths: str | None,
) -> None:
    """Serve the TODO dashboard API for every repository under --root."""
    from todotracks.server.app import Dashboard

    matcher = _matcher(todo_regex, exclude_paths)
    repositories = discover_repositories(root, matcher, settings.max_concurrency)
    if not repositories:
        raise click.ClickException(f"Unable to find any local repositories under {root}")

    dashboard = Dashboard(
        repositories,
        context_lines_before=settings.context_lines_before,
        context_lines_after=settings.context_lines_after,
        warm_cache=settings.warm_cache,
    )
    host = host or settings.host
    port = port or settings.port
    click.echo(f"Serving {len(repositories)} repositories on {host}:{port}...")
    asyncio.run(dashboard.run(host, port))


@cli.command()
@click.option("--repo", default=".", help="Path to the git repository")
def branches(repo: str) -> None:
    """List branches and the revisions they point at."""
    repository = _open(repo)
    _echo_json(to_wire(_run(repository.list_branches())))


@cli.command()
@click.option("--repo", default=".", help="Path to the git repository")
@click.option("--revision", "-r", required=True, help="Branch name or full revision hash")
@click.option(
    "--exclude-paths",
    default=None,
    help="Comma-separated path regexes to skip (overrides configuration)",
)
def todos(repo: str, revision: str, exclude_paths: str | None) -> None:
    """List every TODO at a revision with the commit that added it."""
    repository = _open(repo)

    async def load() -> Any:
        resolved = await _resolve_revision(repository, revision)
        return await repository.load_revision_todos(resolved, exclude_paths)

    _echo_json(to_wire(_run(load())))


@cli.command()
@click.option("--repo", default=".", help="Path to the git repository")
@click.argument("revision")
@click.argument("file_name")
@click.argument("line_number", type=int)
def status(repo: str, revision: str, file_name: str, line_number: int) -> None:
    """Show on which branches the TODO at FILE_NAME:LINE_NUMBER survives."""
    repository = _open(repo)

    async def load() -> Any:
        resolved = await _resolve_revision(repository, revision)
        await repository.validate_path_at_revision(resolved, file_name)
        await repository.validate_line_number(resolved, file_name, line_number)
        todo_id = MarkerId(revision=resolved, file_name=file_name, line_number=line_number)
        return await repository.load_todo_status(todo_id)

    _echo_json(to_wire(_run(load())))
