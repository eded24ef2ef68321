"""HTTP dashboard API for todo-tracks using Starlette.

Endpoints (all GET, all JSON unless noted):
- /health: health check
- /repos: served repositories
- /aliases?repo=: branches of a repository
- /revision?repo=&revision=: every TODO at a revision
- /todo?repo=&revision=&fileName=&lineNumber=: TODO details
- /todoStatus?repo=&revision=&fileName=&lineNumber=: per-branch status
- /browse?repo=&revision=&fileName=[&lineNumber=]: redirect to a file view
- /raw?repo=&revision=&fileName=&lineNumber=: file contents (plain text)

``repo`` may be omitted when exactly one repository is served. Bad
parameters answer 400; internal failures answer 500 and are logged.
"""

import contextlib
from collections.abc import AsyncIterator

import structlog
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import (
    JSONResponse,
    PlainTextResponse,
    RedirectResponse,
    Response,
)
from starlette.routing import Route

from todotracks import __version__
from todotracks.exceptions import InternalError, ValidationError
from todotracks.models import MarkerId, RepoPath, Revision, to_wire
from todotracks.tracking.repository import TodoRepository

logger = structlog.get_logger(__name__)


class Dashboard:
    """Serves the tracker operations of one or more repositories."""

    def __init__(
        self,
        repositories: dict[str, TodoRepository],
        context_lines_before: int = 5,
        context_lines_after: int = 5,
        warm_cache: bool = True,
    ) -> None:
        self.repositories = repositories
        self.context_lines_before = context_lines_before
        self.context_lines_after = context_lines_after
        self.warm_cache = warm_cache

    # -- parameter parsing ---------------------------------------------------

    def _read_repo(self, request: Request) -> TodoRepository:
        repo_param = request.query_params.get("repo", "")
        if not repo_param:
            if len(self.repositories) != 1:
                raise ValidationError("Missing the repo parameter")
            return next(iter(self.repositories.values()))
        repository = self.repositories.get(repo_param)
        if repository is None:
            raise ValidationError(f"Unknown repo '{repo_param}'")
        return repository

    async def _read_revision(self, request: Request) -> tuple[TodoRepository, Revision]:
        repository = self._read_repo(request)
        revision_param = request.query_params.get("revision", "")
        if not revision_param:
            raise ValidationError("Missing the revision parameter")
        return repository, await repository.validate_revision(revision_param)

    async def _read_path(
        self, request: Request
    ) -> tuple[TodoRepository, Revision, str]:
        repository, revision = await self._read_revision(request)
        file_name = request.query_params.get("fileName", "")
        if not file_name:
            raise ValidationError("Missing the fileName parameter")
        await repository.validate_path_at_revision(revision, file_name)
        return repository, revision, file_name

    async def _read_todo_id(
        self, request: Request, default_line: str | None = None
    ) -> tuple[TodoRepository, MarkerId]:
        repository, revision, file_name = await self._read_path(request)
        line_param = request.query_params.get("lineNumber", default_line or "")
        if not line_param:
            raise ValidationError("Missing the lineNumber param")
        try:
            line_number = int(line_param)
        except ValueError as e:
            raise ValidationError(
                f"Invalid format for the lineNumber parameter: {e}"
            ) from e
        await repository.validate_line_number(revision, file_name, line_number)
        todo_id = MarkerId(revision=revision, file_name=file_name, line_number=line_number)
        return repository, todo_id

    # -- handlers ------------------------------------------------------------

    async def health_handler(self, request: Request) -> JSONResponse:
        return JSONResponse({
            "status": "healthy",
            "server": "todotracks",
            "version": __version__,
        })

    async def repos_handler(self, request: Request) -> JSONResponse:
        repo_paths = sorted(
            (
                RepoPath(path=repository.repo_path, repo_id=repo_id)
                for repo_id, repository in self.repositories.items()
            ),
            key=lambda r: r.path,
        )
        return JSONResponse(to_wire(repo_paths))

    async def aliases_handler(self, request: Request) -> JSONResponse:
        repository = self._read_repo(request)
        return JSONResponse(to_wire(await repository.list_branches()))

    async def revision_handler(self, request: Request) -> JSONResponse:
        repository, revision = await self._read_revision(request)
        return JSONResponse(to_wire(await repository.load_revision_todos(revision)))

    async def todo_handler(self, request: Request) -> JSONResponse:
        repository, todo_id = await self._read_todo_id(request)
        details = await repository.load_todo_details(
            todo_id, self.context_lines_before, self.context_lines_after
        )
        return JSONResponse(to_wire(details))

    async def todo_status_handler(self, request: Request) -> JSONResponse:
        repository, todo_id = await self._read_todo_id(request)
        return JSONResponse(to_wire(await repository.load_todo_status(todo_id)))

    async def browse_handler(self, request: Request) -> RedirectResponse:
        repository, todo_id = await self._read_todo_id(request, default_line="1")
        url = await repository.get_browse_url(
            todo_id.revision, todo_id.file_name, todo_id.line_number
        )
        return RedirectResponse(url, status_code=301)

    async def raw_handler(self, request: Request) -> PlainTextResponse:
        repository, todo_id = await self._read_todo_id(request)
        contents = await repository.read_file_snippet(todo_id.revision, todo_id.file_name)
        return PlainTextResponse(contents)

    # -- error handling ------------------------------------------------------

    async def validation_error_handler(
        self, request: Request, exc: Exception
    ) -> Response:
        logger.info("http.bad_request", path=request.url.path, error=str(exc))
        return JSONResponse({"error": str(exc)}, status_code=400)

    async def internal_error_handler(self, request: Request, exc: Exception) -> Response:
        logger.error(
            "http.internal_error",
            path=request.url.path,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse({"error": f"Server error: {exc}"}, status_code=500)

    # -- application ---------------------------------------------------------

    @contextlib.asynccontextmanager
    async def lifespan(self, app: Starlette) -> AsyncIterator[None]:
        if self.warm_cache:
            for repository in self.repositories.values():
                repository.start()
        logger.info("http.started", repositories=len(self.repositories))
        yield
        for repository in self.repositories.values():
            await repository.close()
        logger.info("http.stopped")

    def create_app(self) -> Starlette:
        routes = [
            Route("/health", self.health_handler, methods=["GET"]),
            Route("/repos", self.repos_handler, methods=["GET"]),
            Route("/aliases", self.aliases_handler, methods=["GET"]),
            Route("/revision", self.revision_handler, methods=["GET"]),
            Route("/todo", self.todo_handler, methods=["GET"]),
            Route("/todoStatus", self.todo_status_handler, methods=["GET"]),
            Route("/browse", self.browse_handler, methods=["GET"]),
            Route("/raw", self.raw_handler, methods=["GET"]),
        ]
        return Starlette(
            routes=routes,
            exception_handlers={
                ValidationError: self.validation_error_handler,
                InternalError: self.internal_error_handler,
            },
            lifespan=self.lifespan,
        )

    async def run(self, host: str, port: int) -> None:
        """Serve until interrupted."""
        import uvicorn

        config = uvicorn.Config(
            self.create_app(),
            host=host,
            port=port,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        logger.info("http.server_starting", host=host, port=port)
        await server.serve()
