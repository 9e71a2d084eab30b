"""GitHub repository used as a remote document store.

Thin capability wrapper over the contents, git trees/blobs, and repos
endpoints, addressed by ``(owner, repo, path)``.  Payloads cross the
boundary base64-encoded; this module hands callers raw bytes.

No retries happen here: conditioned writes must be retried from a fresh
read, which only the caller can do (see ``api.services.retry``).
"""

import base64
import logging
from typing import Any
from urllib.parse import quote

import httpx

from api.config import get_settings
from api.models.store import (
    ContentResult,
    DirectoryEntry,
    DirectoryResult,
    FileResult,
    Missing,
    RepositoryInfo,
    TreeEntry,
    WriteResult,
)
from api.services.cache import BoundedCache
from api.services.errors import (
    ConflictError,
    NotFoundError,
    StoreError,
    TransientError,
    error_from_response,
)
from api.services.http_client import get_shared_client, github_headers

logger = logging.getLogger(__name__)


def _encode(content: bytes | str) -> str:
    if isinstance(content, str):
        content = content.encode("utf-8")
    return base64.b64encode(content).decode("ascii")


def _decode(payload: str) -> bytes:
    # The contents API wraps base64 at 60 columns; b64decode skips newlines
    return base64.b64decode(payload)


class GitHubStore:
    """Read/write/delete/list operations against one repository.

    Args:
        owner: Account that owns the repository.
        repo: Repository name.
        token: Bearer token; ``None`` for unauthenticated public reads.
        cache: Optional cache used for the (rarely changing) default branch.
        client: httpx client; defaults to the process-wide shared client.
        public: Anonymous-visitor view of the repository.  Its cached reads
            live under their own keys, apart from the owner's.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str | None = None,
        *,
        cache: BoundedCache | None = None,
        client: httpx.AsyncClient | None = None,
        public: bool = False,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self._token = token
        self._cache = cache
        self._client = client
        self.public = public
        self._base_url = get_settings().github_api_url.rstrip("/")

    def __repr__(self) -> str:
        return f"GitHubStore({self.owner}/{self.repo})"

    @property
    def authenticated(self) -> bool:
        return bool(self._token)

    def cache_key(self, kind: str, *parts: str) -> str:
        """Cache key ``{kind}:{owner}:{repo}[:part...]`` for this access scope."""
        if self.public:
            kind = f"public-{kind}"
        return ":".join([kind, self.owner, self.repo, *parts])

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_shared_client()

    def _repo_url(self, suffix: str = "") -> str:
        return f"{self._base_url}/repos/{self.owner}/{self.repo}{suffix}"

    def _contents_url(self, path: str) -> str:
        return self._repo_url(f"/contents/{quote(path, safe='/')}")

    async def _request(
        self,
        method: str,
        url: str,
        *,
        context: str,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Issue a request, raising a ``StoreError`` for anything but 2xx."""
        try:
            resp = await self.client.request(
                method,
                url,
                headers=github_headers(self._token),
                json=json,
                params=params,
            )
        except httpx.TimeoutException as e:
            raise TransientError(f"{context}: timed out") from e
        except httpx.TransportError as e:
            raise TransientError(f"{context}: {e}") from e

        if resp.is_success:
            return resp
        raise error_from_response(resp, context)

    # -- files and directories ---------------------------------------------

    async def get_content(self, path: str, ref: str | None = None) -> ContentResult:
        """Fetch a path, answering with a file, a directory listing, or Missing."""
        params = {"ref": ref} if ref else None
        try:
            resp = await self._request(
                "GET", self._contents_url(path), params=params, context=f"GET {path}"
            )
        except NotFoundError:
            return Missing(path=path)

        data = resp.json()
        if isinstance(data, list):
            return DirectoryResult(
                path=path,
                entries=[
                    DirectoryEntry(
                        name=item["name"],
                        path=item.get("path", f"{path}/{item['name']}"),
                        type=item.get("type", "file"),
                        sha=item.get("sha", ""),
                    )
                    for item in data
                ],
            )

        sha = data.get("sha", "")
        payload = data.get("content")
        if data.get("encoding") == "none" or (not payload and data.get("size", 0)):
            # Files over 1 MB come back without inline content
            content = await self.get_blob(sha)
        else:
            content = _decode(payload or "")
        return FileResult(path=data.get("path", path), sha=sha, content=content)

    async def read_file(self, path: str) -> FileResult:
        """Read a file. Raises NotFoundError if absent."""
        result = await self.get_content(path)
        if isinstance(result, FileResult):
            return result
        if isinstance(result, Missing):
            raise NotFoundError(f"{path} not found", status=404)
        raise StoreError(f"{path} is a directory, not a file")

    async def list_directory(self, path: str) -> list[DirectoryEntry]:
        """List a directory. Raises NotFoundError if absent."""
        result = await self.get_content(path)
        if isinstance(result, DirectoryResult):
            return result.entries
        if isinstance(result, Missing):
            raise NotFoundError(f"{path} not found", status=404)
        raise StoreError(f"{path} is a file, not a directory")

    async def write_file(
        self,
        path: str,
        content: bytes | str,
        message: str,
        expected_sha: str | None = None,
        *,
        branch: str | None = None,
    ) -> WriteResult:
        """Create or update a file.

        Without ``expected_sha`` this is a create and fails with
        ConflictError if the file already exists.  With it, the write only
        succeeds if the remote sha still matches.
        """
        body: dict[str, Any] = {"message": message, "content": _encode(content)}
        if expected_sha:
            body["sha"] = expected_sha
        if branch:
            body["branch"] = branch
        try:
            resp = await self._request(
                "PUT", self._contents_url(path), json=body, context=f"PUT {path}"
            )
        except StoreError as e:
            # GitHub answers 422 "sha wasn't supplied" when creating over a file
            if e.status == 422 and not expected_sha:
                raise ConflictError(f"{path} already exists", status=422) from e
            raise
        data = resp.json()
        return WriteResult(path=path, sha=data.get("content", {}).get("sha", ""))

    async def delete_file(
        self,
        path: str,
        expected_sha: str,
        message: str,
        *,
        branch: str | None = None,
    ) -> None:
        """Delete a file, conditioned on its current sha."""
        body: dict[str, Any] = {"message": message, "sha": expected_sha}
        if branch:
            body["branch"] = branch
        await self._request(
            "DELETE", self._contents_url(path), json=body, context=f"DELETE {path}"
        )

    # -- git data ----------------------------------------------------------

    async def list_tree(self, ref: str, recursive: bool = True) -> list[TreeEntry]:
        """List the whole file tree for *ref* in a single call."""
        params = {"recursive": "1"} if recursive else None
        resp = await self._request(
            "GET",
            self._repo_url(f"/git/trees/{quote(ref, safe='')}"),
            params=params,
            context=f"tree {ref}",
        )
        data = resp.json()
        if data.get("truncated"):
            logger.warning("Tree listing for %s/%s@%s truncated", self.owner, self.repo, ref)
        return [
            TreeEntry(path=item["path"], sha=item["sha"], type=item["type"])
            for item in data.get("tree", [])
        ]

    async def get_blob(self, sha: str) -> bytes:
        resp = await self._request(
            "GET", self._repo_url(f"/git/blobs/{sha}"), context=f"blob {sha[:7]}"
        )
        data = resp.json()
        if data.get("encoding") == "base64":
            return _decode(data.get("content", ""))
        return data.get("content", "").encode("utf-8")

    # -- repository metadata -----------------------------------------------

    async def get_repository(self) -> RepositoryInfo:
        resp = await self._request("GET", self._repo_url(), context="repo")
        return self._repository_info(resp.json())

    async def create_repository(self, description: str) -> RepositoryInfo:
        """Create the repository under the authenticated account."""
        resp = await self._request(
            "POST",
            f"{self._base_url}/user/repos",
            json={"name": self.repo, "description": description, "auto_init": True},
            context="create repo",
        )
        return self._repository_info(resp.json())

    async def update_repository(self, description: str) -> RepositoryInfo:
        resp = await self._request(
            "PATCH",
            self._repo_url(),
            json={"description": description},
            context="update repo",
        )
        return self._repository_info(resp.json())

    def _repository_info(self, data: dict[str, Any]) -> RepositoryInfo:
        return RepositoryInfo(
            owner=data.get("owner", {}).get("login", self.owner),
            name=data.get("name", self.repo),
            default_branch=data.get("default_branch") or "main",
            description=data.get("description"),
        )

    async def get_default_branch(self) -> str:
        """Return the default branch, cached for ``default_branch_ttl``."""
        # Slash-joined so per-repo content invalidation leaves it alone
        prefix = "public-" if self.public else ""
        cache_key = f"{prefix}default-branch:{self.owner}/{self.repo}"
        if self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return cached
        branch = (await self.get_repository()).default_branch
        if self._cache is not None:
            self._cache.set(cache_key, branch, ttl=get_settings().default_branch_ttl)
        return branch

    async def get_authenticated_login(self) -> str:
        """Return the login of the account the token belongs to."""
        resp = await self._request("GET", f"{self._base_url}/user", context="user")
        return resp.json()["login"]
