"""About page — optional singleton file at ``content/about.md``.

A missing file means "no about page yet", which is a distinct state from
an about page with empty content.
"""

import logging

from api.models.about import AboutPage
from api.models.store import FileResult, Missing
from api.services.bootstrap import ensure_structure
from api.services.cache import BoundedCache
from api.services.errors import StoreError
from api.services.github_store import GitHubStore
from api.services.retry import RetryPolicy, is_transient, with_retry

logger = logging.getLogger(__name__)

ABOUT_PATH = "content/about.md"

# Cached in place of None so a known-missing page is a cache hit too
_ABSENT = "__absent__"


def _about_key(store: GitHubStore) -> str:
    return store.cache_key("about")


async def get_about_page(
    store: GitHubStore, cache: BoundedCache, policy: RetryPolicy | None = None
) -> AboutPage | None:
    """Return the about page, or None if the user has not written one."""
    key = _about_key(store)
    cached = cache.get(key)
    if cached is not None:
        return None if cached == _ABSENT else cached

    try:
        result = await with_retry(
            lambda: store.get_content(ABOUT_PATH), policy, should_retry=is_transient
        )
    except StoreError as e:
        stale = cache.get_stale(key)
        if stale is not None:
            logger.warning("Serving stale about page for %s/%s: %s", store.owner, store.repo, e)
            return None if stale == _ABSENT else stale
        raise

    if isinstance(result, Missing):
        # Anonymous readers also get 404 for private repositories
        if not store.public:
            cache.set(key, _ABSENT)
        return None
    if not isinstance(result, FileResult):
        raise StoreError(f"{ABOUT_PATH} is a directory")
    page = AboutPage(content=result.text())
    cache.set(key, page)
    return page


async def create_about_page(
    store: GitHubStore,
    cache: BoundedCache,
    content: str,
    policy: RetryPolicy | None = None,
) -> AboutPage:
    """Create the about page. Fails with ConflictError if one already exists."""
    await ensure_structure(store, cache, policy)
    try:
        await with_retry(
            lambda: store.write_file(ABOUT_PATH, content, "Create about page"),
            policy,
            should_retry=is_transient,
        )
    finally:
        cache.invalidate_scope(store.owner, store.repo)
    logger.info("Created about page in %s/%s", store.owner, store.repo)
    return AboutPage(content=content)


async def update_about_page(
    store: GitHubStore,
    cache: BoundedCache,
    content: str,
    policy: RetryPolicy | None = None,
) -> AboutPage:
    """Write the about page, conditioned on the sha read just before.

    A missing page is created.  Conflicts re-read and retry.
    """
    await ensure_structure(store, cache, policy)

    async def _write() -> None:
        current = await store.get_content(ABOUT_PATH)
        if isinstance(current, FileResult):
            await store.write_file(
                ABOUT_PATH, content, "Update about page", expected_sha=current.sha
            )
        elif isinstance(current, Missing):
            await store.write_file(ABOUT_PATH, content, "Create about page")
        else:
            raise StoreError(f"{ABOUT_PATH} is a directory")

    try:
        await with_retry(_write, policy, context=f"update {ABOUT_PATH}")
    finally:
        cache.invalidate_scope(store.owner, store.repo)
    logger.info("Updated about page in %s/%s", store.owner, store.repo)
    return AboutPage(content=content)
