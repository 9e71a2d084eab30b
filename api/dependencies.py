"""FastAPI dependencies — content cache, retry policy, and per-request stores.

The content cache is one explicitly constructed ``BoundedCache`` per
application, kept on ``app.state`` (created in the lifespan hook, or on
first use when the app runs without lifespan events, e.g. under tests).
"""

import hashlib
import logging

from fastapi import Depends, Header, Path, Request

from api.config import get_settings
from api.services.cache import BoundedCache
from api.services.errors import UnauthorizedError
from api.services.github_store import GitHubStore
from api.services.retry import RetryPolicy, is_transient, with_retry

logger = logging.getLogger(__name__)

USERNAME_PATTERN = r"^[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?$"


def new_content_cache() -> BoundedCache:
    settings = get_settings()
    return BoundedCache(max_size=settings.cache_max_entries, ttl=settings.cache_ttl)


def get_content_cache(request: Request) -> BoundedCache:
    cache = getattr(request.app.state, "content_cache", None)
    if cache is None:
        cache = new_content_cache()
        request.app.state.content_cache = cache
    return cache


def get_retry_policy() -> RetryPolicy:
    return RetryPolicy.from_settings()


def bearer_token(authorization: str | None = Header(default=None)) -> str:
    """Extract the bearer token issued by the sign-in provider."""
    if not authorization:
        raise UnauthorizedError("Unauthorized", status=401)
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Unauthorized", status=401)
    return token.strip()


async def resolve_login(
    token: str, cache: BoundedCache, policy: RetryPolicy | None = None
) -> str:
    """Return the GitHub login for *token*, cached per token digest."""
    digest = hashlib.sha256(token.encode("utf-8")).hexdigest()[:32]
    key = f"user-login:{digest}"
    cached = cache.get(key)
    if cached is not None:
        return cached
    probe = GitHubStore(owner="", repo=get_settings().content_repo, token=token)
    login = await with_retry(
        probe.get_authenticated_login, policy, should_retry=is_transient
    )
    cache.set(key, login)
    return login


async def get_user_store(
    token: str = Depends(bearer_token),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
) -> GitHubStore:
    """Store for the signed-in user's own content repository."""
    login = await resolve_login(token, cache, policy)
    return GitHubStore(login, get_settings().content_repo, token, cache=cache)


def get_public_store(
    username: str = Path(..., max_length=39, pattern=USERNAME_PATTERN),
    cache: BoundedCache = Depends(get_content_cache),
) -> GitHubStore:
    """Read-only store for another user's repository.

    Uses the server token when configured, otherwise unauthenticated
    access at the lower public rate limit.  Reads are cached apart from
    the owner's, so nothing the owner's token can see leaks through here.
    """
    settings = get_settings()
    return GitHubStore(
        username,
        settings.content_repo,
        settings.github_token or None,
        cache=cache,
        public=True,
    )
