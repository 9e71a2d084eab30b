"""Shared fixtures for TinyMind API tests."""

import asyncio
import base64
import hashlib
import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from api.services.cache import BoundedCache
from api.services.github_store import GitHubStore
from api.services.retry import RetryPolicy

OWNER = "octocat"
REPO = "tinymind-blog"


@pytest.fixture(autouse=True)
def _reset_global_state():
    """Reset all module-level singletons and caches between tests."""
    yield

    # 1. Settings LRU cache
    from api.config import get_settings

    get_settings.cache_clear()

    # 2. HTTP client singleton
    import api.services.http_client as http_mod

    http_mod._client = None

    # 3. Application-wide content cache
    from api.main import app

    app.state.content_cache = None
    app.dependency_overrides.clear()


@pytest.fixture
def mock_settings(monkeypatch):
    """Provide a Settings object with safe test defaults."""
    from api.config import Settings, get_settings

    test_settings = Settings(
        github_api_url="https://api.github.com",
        github_token="server-token",
        content_repo=REPO,
        site_url="https://tinymind.me",
        retry_max_attempts=3,
        retry_base_delay=0,
        retry_max_delay=0,
        retry_jitter=0,
        max_image_bytes=1024,
    )

    get_settings.cache_clear()
    monkeypatch.setattr("api.config.get_settings", lambda: test_settings)

    # Patch get_settings in all modules that import it directly
    # (from api.config import get_settings creates a local binding that
    # the api.config monkeypatch above does not affect)
    for mod_path in [
        "api.dependencies",
        "api.services.bootstrap",
        "api.services.github_store",
        "api.services.http_client",
        "api.services.images",
        "api.services.retry",
    ]:
        monkeypatch.setattr(f"{mod_path}.get_settings", lambda: test_settings)

    return test_settings


def git_sha(content: bytes) -> str:
    return hashlib.sha1(b"blob %d\0" % len(content) + content).hexdigest()


class FakeGitHub:
    """In-memory stand-in for the GitHub endpoints the store uses.

    Serves one repository (``owner/repo``).  ``fail()`` queues canned error
    responses; ``before_request`` runs before each request is handled,
    which lets a test change the repository "behind the client's back".
    Setting ``private_token`` makes the repository private: requests
    without that bearer token get 404, as GitHub answers them.
    """

    def __init__(self, owner: str = OWNER, repo: str = REPO) -> None:
        self.owner = owner
        self.repo = repo
        self.login = owner
        self.repo_exists = True
        self.description: str | None = "Write blog posts and thoughts"
        self.default_branch = "main"
        self.files: dict[str, bytes] = {}
        self.requests: list[tuple[str, str]] = []
        self.before_request: Callable[[httpx.Request], None] | None = None
        self.private_token: str | None = None
        self._failures: list[dict[str, Any]] = []

    # -- test helpers --------------------------------------------------------

    def put(self, path: str, content: str | bytes) -> str:
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.files[path] = content
        return git_sha(content)

    def text(self, path: str) -> str:
        return self.files[path].decode("utf-8")

    def ledger(self) -> list[dict[str, Any]]:
        return json.loads(self.text("content/thoughts.json"))

    def seed_skeleton(self) -> "FakeGitHub":
        self.put("README.md", "# TinyMind Blog\n\nMy notes.\n")
        self.put("content/.gitkeep", "")
        self.put("content/blog/.gitkeep", "")
        self.put("content/thoughts.json", "[]")
        return self

    def fail(
        self,
        method: str,
        path_contains: str,
        status: int,
        *,
        times: int = 1,
        headers: dict[str, str] | None = None,
        message: str = "injected failure",
    ) -> None:
        self._failures.append(
            {
                "method": method,
                "path": path_contains,
                "status": status,
                "times": times,
                "headers": headers or {},
                "message": message,
            }
        )

    def count(self, method: str, path_contains: str = "") -> int:
        return sum(
            1 for m, p in self.requests if m == method and path_contains in p
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    # -- request handling ----------------------------------------------------

    async def handler(self, request: httpx.Request) -> httpx.Response:
        # Yield so concurrent callers interleave like real network I/O
        await asyncio.sleep(0)
        path = request.url.path
        self.requests.append((request.method, path))
        if self.before_request is not None:
            self.before_request(request)

        for failure in self._failures:
            if (
                failure["times"] > 0
                and failure["method"] == request.method
                and failure["path"] in path
            ):
                failure["times"] -= 1
                return httpx.Response(
                    failure["status"],
                    json={"message": failure["message"]},
                    headers=failure["headers"],
                )

        if path == "/user" and request.method == "GET":
            return httpx.Response(200, json={"login": self.login})
        if path == "/user/repos" and request.method == "POST":
            return self._create_repo(json.loads(request.content))

        repo_prefix = f"/repos/{self.owner}/{self.repo}"
        if (
            self.private_token is not None
            and path.startswith(repo_prefix)
            and request.headers.get("Authorization") != f"Bearer {self.private_token}"
        ):
            return httpx.Response(404, json={"message": "Not Found"})
        if not path.startswith(repo_prefix) or (
            not self.repo_exists and path != repo_prefix
        ):
            return httpx.Response(404, json={"message": "Not Found"})
        if path == repo_prefix:
            return self._repo(request)

        rest = path[len(repo_prefix) :]
        if rest.startswith("/contents/"):
            return self._contents(request, rest[len("/contents/") :])
        if rest.startswith("/git/trees/"):
            return self._tree(rest[len("/git/trees/") :])
        if rest.startswith("/git/blobs/"):
            return self._blob(rest[len("/git/blobs/") :])
        return httpx.Response(404, json={"message": "Not Found"})

    def _repo_json(self) -> dict[str, Any]:
        return {
            "name": self.repo,
            "owner": {"login": self.owner},
            "default_branch": self.default_branch,
            "description": self.description,
        }

    def _repo(self, request: httpx.Request) -> httpx.Response:
        if not self.repo_exists:
            return httpx.Response(404, json={"message": "Not Found"})
        if request.method == "PATCH":
            self.description = json.loads(request.content).get("description")
        return httpx.Response(200, json=self._repo_json())

    def _create_repo(self, body: dict[str, Any]) -> httpx.Response:
        if self.repo_exists:
            return httpx.Response(422, json={"message": "name already exists"})
        self.repo_exists = True
        self.description = body.get("description")
        if body.get("auto_init"):
            self.put("README.md", f"# {self.repo}\n")
        return httpx.Response(201, json=self._repo_json())

    def _contents(self, request: httpx.Request, path: str) -> httpx.Response:
        if request.method == "GET":
            if path in self.files:
                content = self.files[path]
                return httpx.Response(
                    200,
                    json={
                        "type": "file",
                        "name": path.rsplit("/", 1)[-1],
                        "path": path,
                        "sha": git_sha(content),
                        "size": len(content),
                        "encoding": "base64",
                        "content": base64.encodebytes(content).decode("ascii"),
                    },
                )
            children = self._children(path)
            if children:
                return httpx.Response(200, json=children)
            return httpx.Response(404, json={"message": "Not Found"})

        body = json.loads(request.content)
        current = self.files.get(path)
        current_sha = git_sha(current) if current is not None else None

        if request.method == "PUT":
            if current_sha and not body.get("sha"):
                return httpx.Response(
                    422, json={"message": 'Invalid request.\n\n"sha" wasn\'t supplied.'}
                )
            if body.get("sha") and body["sha"] != current_sha:
                return httpx.Response(
                    409, json={"message": f"{path} does not match {body['sha']}"}
                )
            sha = self.put(path, base64.b64decode(body["content"]))
            return httpx.Response(
                201 if current is None else 200,
                json={"content": {"path": path, "sha": sha}},
            )

        if request.method == "DELETE":
            if current is None:
                return httpx.Response(404, json={"message": "Not Found"})
            if body.get("sha") != current_sha:
                return httpx.Response(
                    409, json={"message": f"{path} does not match {body.get('sha')}"}
                )
            del self.files[path]
            return httpx.Response(200, json={"content": None})

        return httpx.Response(405, json={"message": "Method Not Allowed"})

    def _children(self, directory: str) -> list[dict[str, Any]]:
        prefix = f"{directory}/"
        seen: dict[str, dict[str, Any]] = {}
        for file_path, content in self.files.items():
            if not file_path.startswith(prefix):
                continue
            name, _, deeper = file_path[len(prefix) :].partition("/")
            if deeper:
                seen.setdefault(
                    name,
                    {"name": name, "path": prefix + name, "type": "dir", "sha": "d" * 40},
                )
            else:
                seen[name] = {
                    "name": name,
                    "path": file_path,
                    "type": "file",
                    "sha": git_sha(content),
                }
        return sorted(seen.values(), key=lambda e: e["name"])

    def _tree(self, ref: str) -> httpx.Response:
        if ref != self.default_branch:
            return httpx.Response(404, json={"message": "Not Found"})
        tree: list[dict[str, Any]] = []
        dirs: set[str] = set()
        for file_path, content in sorted(self.files.items()):
            parts = file_path.split("/")
            for i in range(1, len(parts)):
                dirs.add("/".join(parts[:i]))
            tree.append({"path": file_path, "type": "blob", "sha": git_sha(content)})
        tree.extend({"path": d, "type": "tree", "sha": "d" * 40} for d in sorted(dirs))
        return httpx.Response(200, json={"sha": "root", "tree": tree, "truncated": False})

    def _blob(self, sha: str) -> httpx.Response:
        for content in self.files.values():
            if git_sha(content) == sha:
                return httpx.Response(
                    200,
                    json={
                        "sha": sha,
                        "encoding": "base64",
                        "content": base64.b64encode(content).decode("ascii"),
                    },
                )
        return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture
def fake_github() -> FakeGitHub:
    """A repository that already has the content skeleton."""
    return FakeGitHub().seed_skeleton()


@pytest.fixture
def cache() -> BoundedCache:
    return BoundedCache(max_size=100, ttl=300)


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Three attempts with no sleeping between them."""
    return RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, jitter=0)


@pytest.fixture
async def store(fake_github, cache):
    client = fake_github.client()
    yield GitHubStore(OWNER, REPO, "test-token", cache=cache, client=client)
    await client.aclose()
