"""Tests for the HTTP dashboard API."""

from collections.abc import Iterator

import pytest
from starlette.testclient import TestClient

from todotracks import __version__
from todotracks.exceptions import BackendError
from todotracks.git.memory import InMemoryBackend
from todotracks.server.app import Dashboard
from todotracks.tracking.matcher import PatternMatcher
from todotracks.tracking.repository import TodoRepository

TODO = "    # TODO: handle the empty case"


@pytest.fixture
def dashboard(repository: TodoRepository, history) -> Dashboard:
    return Dashboard({repository.repo_id: repository}, warm_cache=False)


@pytest.fixture
def client(dashboard: Dashboard) -> Iterator[TestClient]:
    with TestClient(dashboard.create_app()) as test_client:
        yield test_client


class TestHealthEndpoint:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "server": "todotracks",
            "version": __version__,
        }


class TestRepositoryEndpoints:
    """Test /repos and /aliases."""

    def test_repos(self, client: TestClient, repository: TodoRepository) -> None:
        response = client.get("/repos")

        assert response.status_code == 200
        assert response.json() == [{"Path": "/memory/repo", "RepoId": repository.repo_id}]

    def test_aliases(self, client: TestClient, history) -> None:
        response = client.get("/aliases")

        assert response.status_code == 200
        assert response.json() == [
            {"Branch": "feature", "Revision": history.fixed},
            {"Branch": "main", "Revision": history.main_head},
            {"Branch": "stale", "Revision": history.base},
        ]

    def test_explicit_repo(self, client: TestClient, repository: TodoRepository) -> None:
        response = client.get("/aliases", params={"repo": repository.repo_id})

        assert response.status_code == 200

    def test_unknown_repo(self, client: TestClient) -> None:
        response = client.get("/aliases", params={"repo": "nope"})

        assert response.status_code == 400
        assert response.json() == {"error": "Unknown repo 'nope'"}

    def test_repo_required_with_several_repositories(
        self, matcher: PatternMatcher
    ) -> None:
        repositories = {}
        for root in ("/memory/one", "/memory/two"):
            backend = InMemoryBackend(repo_root=root)
            backend.commit("main", {"a.py": "pass\n"})
            repository = TodoRepository(backend, matcher)
            repositories[repository.repo_id] = repository

        with TestClient(Dashboard(repositories, warm_cache=False).create_app()) as client:
            response = client.get("/aliases")

        assert response.status_code == 400
        assert response.json() == {"error": "Missing the repo parameter"}


class TestTodoEndpoints:
    """Test /revision, /todo and /todoStatus."""

    def test_revision(self, client: TestClient, history) -> None:
        response = client.get("/revision", params={"revision": history.main_head})

        assert response.status_code == 200
        assert response.json() == [
            {
                "Revision": history.todo,
                "FileName": "app.py",
                "LineNumber": 2,
                "Contents": TODO,
            }
        ]

    def test_revision_missing(self, client: TestClient) -> None:
        response = client.get("/revision")

        assert response.status_code == 400
        assert response.json() == {"error": "Missing the revision parameter"}

    def test_revision_malformed(self, client: TestClient) -> None:
        response = client.get("/revision", params={"revision": "main"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid hash format: main"}

    def test_revision_unknown(self, client: TestClient) -> None:
        response = client.get("/revision", params={"revision": "f" * 40})

        assert response.status_code == 400
        assert "Unknown revision" in response.json()["error"]

    def test_todo_details(self, client: TestClient, history) -> None:
        response = client.get(
            "/todo",
            params={"revision": history.todo, "fileName": "app.py", "lineNumber": "2"},
        )

        assert response.status_code == 200
        details = response.json()
        assert details["Id"] == {
            "Revision": history.todo,
            "FileName": "app.py",
            "LineNumber": 2,
        }
        assert details["RevisionMetadata"]["Subject"] == "Add TODO"
        assert details["RevisionMetadata"]["AuthorName"] == "Ada"
        assert TODO in details["Context"]

    def test_todo_missing_file_name(self, client: TestClient, history) -> None:
        response = client.get("/todo", params={"revision": history.todo})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing the fileName parameter"}

    def test_todo_unknown_path(self, client: TestClient, history) -> None:
        response = client.get(
            "/todo",
            params={"revision": history.todo, "fileName": "nope.py", "lineNumber": "1"},
        )

        assert response.status_code == 400
        assert "Path 'nope.py' not found" in response.json()["error"]

    @pytest.mark.parametrize(
        ("line_number", "message"),
        [
            ("", "Missing the lineNumber param"),
            ("two", "Invalid format for the lineNumber parameter"),
            ("9", "Line #9, not found"),
        ],
    )
    def test_todo_bad_line_number(
        self, client: TestClient, history, line_number: str, message: str
    ) -> None:
        response = client.get(
            "/todo",
            params={
                "revision": history.todo,
                "fileName": "app.py",
                "lineNumber": line_number,
            },
        )

        assert response.status_code == 400
        assert message in response.json()["error"]

    def test_todo_status(self, client: TestClient, history) -> None:
        response = client.get(
            "/todoStatus",
            params={"revision": history.todo, "fileName": "app.py", "lineNumber": "2"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "BranchesMissing": [{"Branch": "stale", "Revision": history.base}],
            "BranchesPresent": [{"Branch": "main", "Revision": history.main_head}],
            "BranchesRemoved": [{"Branch": "feature", "Revision": history.fixed}],
        }


class TestFileEndpoints:
    """Test /browse and /raw."""

    def test_browse_github(
        self, client: TestClient, backend: InMemoryBackend, history
    ) -> None:
        backend.remotes["origin"] = "git@github.com:acme/widgets.git"

        response = client.get(
            "/browse",
            params={"revision": history.todo, "fileName": "app.py", "lineNumber": "2"},
            follow_redirects=False,
        )

        assert response.status_code == 301
        assert response.headers["location"] == (
            f"https://github.com/acme/widgets/blob/{history.todo}/app.py#L2"
        )

    def test_browse_defaults_to_first_line(
        self, client: TestClient, repository: TodoRepository, history
    ) -> None:
        response = client.get(
            "/browse",
            params={"revision": history.todo, "fileName": "app.py"},
            follow_redirects=False,
        )

        assert response.status_code == 301
        assert response.headers["location"] == (
            f"/raw?repo={repository.repo_id}&revision={history.todo}"
            "&fileName=app.py&lineNumber=1"
        )

    def test_raw(self, client: TestClient, history) -> None:
        response = client.get(
            "/raw",
            params={"revision": history.todo, "fileName": "app.py", "lineNumber": "1"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == f"def run(items):\n{TODO}\n    return items\n"


class TestErrors:
    def test_internal_error_is_500(
        self, client: TestClient, backend: InMemoryBackend
    ) -> None:
        async def failing_branches() -> str:
            raise BackendError(["git", "branch"], 128, "fatal: broken")

        backend.list_branches = failing_branches  # type: ignore[method-assign]

        response = client.get("/aliases")

        assert response.status_code == 500
        assert "fatal: broken" in response.json()["error"]


class TestLifespan:
    def test_warms_caches_on_startup(self, repository: TodoRepository, history) -> None:
        dashboard = Dashboard({repository.repo_id: repository}, warm_cache=True)

        with TestClient(dashboard.create_app()) as client:
            assert client.get("/health").status_code == 200
            assert repository._warm_task is not None

        assert repository._warm_task.done()
