"""Repository bootstrap — make sure a user's content repo has its skeleton.

Safe to call before every mutation: each step only acts when something
is missing, so concurrent callers for the same user converge on the same
end state.  A completed bootstrap is remembered in the cache for
``bootstrap_ttl`` seconds to avoid repeating the probe on every request.
"""

import logging

from api.config import get_settings
from api.models.store import FileResult, Missing
from api.services.cache import BoundedCache
from api.services.errors import ConflictError, NotFoundError, StoreError
from api.services.github_store import GitHubStore
from api.services.retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

README_PATH = "README.md"
THOUGHTS_PATH = "content/thoughts.json"

# (path, initial content, commit message)
SKELETON: list[tuple[str, str, str]] = [
    ("content/.gitkeep", "", "Initialize content directory"),
    ("content/blog/.gitkeep", "", "Initialize blog directory"),
    (THOUGHTS_PATH, "[]", "Initialize thoughts.json"),
]


def repo_description() -> str:
    site = get_settings().site_url
    return f"Write blog posts and thoughts at {site} with data stored on GitHub."


def readme_content() -> str:
    return f"# TinyMind Blog\n\n{repo_description()}\n"


def _is_placeholder_readme(text: str, repo: str) -> bool:
    stripped = text.strip()
    return stripped == "" or stripped == f"# {repo}"


def bootstrap_cache_key(store: GitHubStore) -> str:
    # Slash-joined so per-repo content invalidation leaves it alone
    return f"bootstrap:{store.owner}/{store.repo}"


async def ensure_repository(store: GitHubStore) -> None:
    """Create the repository if missing; give it a description if it has none."""
    try:
        info = await store.get_repository()
    except NotFoundError:
        try:
            await store.create_repository(repo_description())
        except StoreError as e:
            # 422 "name already exists": another request created it first
            if e.status != 422:
                raise
            logger.info("Repository %s/%s was created concurrently", store.owner, store.repo)
            return
        logger.info("Created repository %s/%s", store.owner, store.repo)
        return
    if not info.description:
        await store.update_repository(repo_description())
        logger.info("Set description on %s/%s", store.owner, store.repo)


async def ensure_readme(store: GitHubStore) -> None:
    """Write the canonical README over a missing, empty, or placeholder one.

    The overwrite is conditioned on the sha just read, so a README the user
    edited in the meantime is left untouched.
    """
    result = await store.get_content(README_PATH)
    if isinstance(result, Missing):
        await create_if_missing(
            store, README_PATH, readme_content(), "Initial commit: Add README.md"
        )
        return
    if not isinstance(result, FileResult):
        return
    if not _is_placeholder_readme(result.text(), store.repo):
        return
    try:
        await store.write_file(
            README_PATH,
            readme_content(),
            "Update README.md with default content",
            expected_sha=result.sha,
        )
        logger.info("Updated README.md in %s/%s", store.owner, store.repo)
    except ConflictError:
        logger.info("README.md in %s/%s changed concurrently, keeping it", store.owner, store.repo)


async def create_if_missing(
    store: GitHubStore, path: str, content: str | bytes, message: str
) -> bool:
    """Create *path* only if a read says it is absent.

    Returns True if this call created the file.  Losing a creation race to
    another request counts as success.  Any read failure other than
    absence propagates.
    """
    result = await store.get_content(path)
    if not isinstance(result, Missing):
        return False
    try:
        await store.write_file(path, content, message)
    except ConflictError:
        logger.info("%s was created concurrently in %s/%s", path, store.owner, store.repo)
        return False
    logger.info("Created %s in %s/%s", path, store.owner, store.repo)
    return True


async def ensure_structure(
    store: GitHubStore,
    cache: BoundedCache | None = None,
    policy: RetryPolicy | None = None,
) -> None:
    """Idempotently bring the repository up to the expected skeleton."""
    key = bootstrap_cache_key(store)
    if cache is not None and cache.get(key):
        return

    async def _bootstrap() -> None:
        await ensure_repository(store)
        await ensure_readme(store)
        for path, content, message in SKELETON:
            await create_if_missing(store, path, content, message)

    await with_retry(_bootstrap, policy, context=f"bootstrap {store.owner}/{store.repo}")

    if cache is not None:
        cache.set(key, True, ttl=get_settings().bootstrap_ttl)
