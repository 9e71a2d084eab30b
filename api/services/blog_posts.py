"""Blog posts stored as ``content/blog/<slug>.md`` in the user's repo.

Listing prefers one recursive tree call plus parallel blob fetches and
falls back to a directory listing plus parallel file reads.  Both fill the
cache, and both fall back to stale cached data when the remote is down.

Renaming a post (a title change that changes its slug) is create-new then
delete-old.  There is no rollback: if the delete fails, the old and new
files both exist until someone removes the old one by hand.
"""

import asyncio
import logging
import re
from urllib.parse import unquote

from api.models.blog import BlogPost
from api.services.bootstrap import ensure_structure
from api.services.cache import BoundedCache
from api.services.errors import (
    InvalidInputError,
    NotFoundError,
    RateLimitedError,
    StoreError,
)
from api.services.github_store import GitHubStore
from api.services.post_format import (
    BLOG_DIR,
    build_post_file,
    extract_date,
    iso_now,
    is_post_file,
    parse_post,
    post_path,
)
from api.services.retry import RetryPolicy, is_transient, with_retry
from api.services.slug import base_slug, slugify

logger = logging.getLogger(__name__)

_RESERVED_NAME_RE = re.compile(r"^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])$", re.IGNORECASE)


def validate_post_id(post_id: str) -> str:
    """Decode and validate a user-supplied post id as a single path segment.

    Rejects traversal sequences, separators, and reserved device names.
    Returns the decoded id; raises InvalidInputError otherwise.
    """
    try:
        decoded = unquote(post_id, errors="strict")
    except UnicodeDecodeError as e:
        raise InvalidInputError("Invalid URL encoding in post id") from e
    if not decoded or len(decoded) > 255:
        raise InvalidInputError(f"Invalid post id: {post_id!r}")
    if ".." in decoded or "/" in decoded or "\\" in decoded:
        raise InvalidInputError("Invalid path: directory traversal not allowed")
    if _RESERVED_NAME_RE.match(decoded):
        raise InvalidInputError("Invalid path: reserved name not allowed")
    return decoded


def _list_key(store: GitHubStore) -> str:
    return store.cache_key("blog-posts")


def _post_key(store: GitHubStore, post_id: str) -> str:
    return store.cache_key("blog-post", post_id)


def _decode_post(path: str, raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("%s is not valid UTF-8, undecodable bytes replaced", path)
        return raw.decode("utf-8", errors="replace")


def _sort_newest_first(posts: list[BlogPost]) -> list[BlogPost]:
    return sorted(posts, key=lambda p: p.date, reverse=True)


async def _fetch_posts_via_tree(
    store: GitHubStore, policy: RetryPolicy | None
) -> tuple[list[BlogPost], bool]:
    """Fast path: one tree listing, then every post blob in parallel.

    Returns (posts, complete); complete is False if any blob fetch failed.
    """
    branch = await with_retry(store.get_default_branch, policy, should_retry=is_transient)
    tree = await with_retry(
        lambda: store.list_tree(branch), policy, should_retry=is_transient
    )
    prefix = f"{BLOG_DIR}/"
    entries = [
        e
        for e in tree
        if e.type == "blob"
        and e.path.startswith(prefix)
        and "/" not in e.path[len(prefix) :]
        and is_post_file(e.path[len(prefix) :])
    ]

    blobs = await asyncio.gather(
        *(store.get_blob(e.sha) for e in entries), return_exceptions=True
    )
    posts: list[BlogPost] = []
    complete = True
    for entry, blob in zip(entries, blobs):
        if isinstance(blob, Exception):
            logger.warning("Could not fetch %s: %s", entry.path, blob)
            complete = False
            continue
        text = _decode_post(entry.path, blob)
        posts.append(parse_post(entry.path[len(prefix) :], text))
    return posts, complete


async def _fetch_posts_via_directory(
    store: GitHubStore, policy: RetryPolicy | None
) -> tuple[list[BlogPost], bool]:
    """Fallback path: list ``content/blog``, then read each post in parallel."""
    try:
        listing = await with_retry(
            lambda: store.list_directory(BLOG_DIR), policy, should_retry=is_transient
        )
    except NotFoundError:
        # Anonymous readers also get 404 for private repositories
        return [], not store.public

    entries = [e for e in listing if e.type == "file" and is_post_file(e.name)]
    files = await asyncio.gather(
        *(store.read_file(e.path) for e in entries), return_exceptions=True
    )
    posts: list[BlogPost] = []
    complete = True
    for entry, result in zip(entries, files):
        if isinstance(result, Exception):
            logger.warning("Could not fetch %s: %s", entry.path, result)
            complete = False
            continue
        posts.append(parse_post(entry.name, _decode_post(entry.path, result.content)))
    return posts, complete


async def list_posts(
    store: GitHubStore, cache: BoundedCache, policy: RetryPolicy | None = None
) -> list[BlogPost]:
    """Return all blog posts, newest first.

    Serves fresh cache hits directly.  On remote failure, serves the last
    cached result (even if expired) before giving up.
    """
    key = _list_key(store)
    cached = cache.get(key)
    if cached is not None:
        return cached

    try:
        try:
            posts, complete = await _fetch_posts_via_tree(store, policy)
        except RateLimitedError:
            raise
        except StoreError as e:
            logger.warning(
                "Tree listing failed for %s/%s (%s), falling back to directory listing",
                store.owner,
                store.repo,
                e,
            )
            posts, complete = await _fetch_posts_via_directory(store, policy)
    except StoreError as e:
        stale = cache.get_stale(key)
        if stale is not None:
            logger.warning(
                "Serving stale blog posts for %s/%s: %s", store.owner, store.repo, e
            )
            return stale
        raise

    posts = _sort_newest_first(posts)
    if complete:
        cache.set(key, posts)
    return posts


async def get_post(
    store: GitHubStore,
    cache: BoundedCache,
    post_id: str,
    policy: RetryPolicy | None = None,
) -> BlogPost | None:
    """Return one post, or None if it does not exist."""
    post_id = validate_post_id(post_id)
    key = _post_key(store, post_id)
    cached = cache.get(key)
    if cached is not None:
        return cached

    try:
        result = await with_retry(
            lambda: store.read_file(post_path(post_id)), policy, should_retry=is_transient
        )
    except NotFoundError:
        return None
    except StoreError as e:
        stale = cache.get_stale(key)
        if stale is not None:
            logger.warning("Serving stale post %s: %s", post_id, e)
            return stale
        raise

    post = parse_post(f"{post_id}.md", _decode_post(result.path, result.content))
    cache.set(key, post)
    return post


async def create_post(
    store: GitHubStore,
    cache: BoundedCache,
    title: str,
    content: str,
    policy: RetryPolicy | None = None,
) -> str:
    """Create a post and return its id.

    The write is unconditioned, so it fails with ConflictError if a post
    with the same slug already exists.
    """
    await ensure_structure(store, cache, policy)
    post_id = slugify(title)
    text = build_post_file(title, iso_now(), content)
    try:
        await with_retry(
            lambda: store.write_file(post_path(post_id), text, f"Add blog post: {title}"),
            policy,
            should_retry=is_transient,
        )
    finally:
        cache.invalidate_scope(store.owner, store.repo)
    logger.info("Created blog post %s in %s/%s", post_id, store.owner, store.repo)
    return post_id


async def update_post(
    store: GitHubStore,
    cache: BoundedCache,
    post_id: str,
    title: str,
    content: str,
    policy: RetryPolicy | None = None,
) -> str:
    """Update a post and return its (possibly new) id.

    The stored ``date`` is carried over; a post without one gets the
    current time.  If the title's slug is unchanged this is a single
    sha-conditioned write, re-read and retried on conflict.  Otherwise the
    post is renamed: the new file is created first, and only then is the
    old one deleted, conditioned on the sha that was read.
    """
    post_id = validate_post_id(post_id)
    await ensure_structure(store, cache, policy)
    # Titles with no sluggable characters keep their current id
    new_id = base_slug(title) or post_id
    old_path = post_path(post_id)

    try:
        if new_id == post_id:

            async def _rewrite() -> None:
                current = await store.read_file(old_path)
                date = extract_date(_decode_post(current.path, current.content)) or iso_now()
                await store.write_file(
                    old_path,
                    build_post_file(title, date, content),
                    f"Update blog post: {title}",
                    expected_sha=current.sha,
                )

            await with_retry(_rewrite, policy, context=f"update {old_path}")
            logger.info("Updated blog post %s in %s/%s", post_id, store.owner, store.repo)
            return post_id

        await _rename_post(store, post_id, new_id, title, content, policy)
        return new_id
    finally:
        cache.invalidate_scope(store.owner, store.repo)


async def _rename_post(
    store: GitHubStore,
    old_id: str,
    new_id: str,
    title: str,
    content: str,
    policy: RetryPolicy | None,
) -> None:
    old_path = post_path(old_id)
    new_path = post_path(new_id)

    current = await with_retry(
        lambda: store.read_file(old_path), policy, should_retry=is_transient
    )
    date = extract_date(_decode_post(current.path, current.content)) or iso_now()
    text = build_post_file(title, date, content)

    await with_retry(
        lambda: store.write_file(new_path, text, f"Rename blog post: {title}"),
        policy,
        should_retry=is_transient,
    )
    try:
        await with_retry(
            lambda: store.delete_file(
                old_path, current.sha, f"Remove renamed blog post: {old_id}"
            ),
            policy,
            should_retry=is_transient,
        )
    except StoreError as e:
        logger.error(
            "Rename of %s/%s left a duplicate: created %s but could not delete %s (%s)",
            store.owner,
            store.repo,
            new_path,
            old_path,
            e,
        )
        return
    logger.info(
        "Renamed blog post %s -> %s in %s/%s", old_id, new_id, store.owner, store.repo
    )


async def delete_post(
    store: GitHubStore,
    cache: BoundedCache,
    post_id: str,
    policy: RetryPolicy | None = None,
) -> None:
    """Delete a post, conditioned on the sha read just before.

    A conflict (the post changed in between) is surfaced, not retried.
    """
    post_id = validate_post_id(post_id)
    await ensure_structure(store, cache, policy)
    path = post_path(post_id)
    try:
        current = await with_retry(
            lambda: store.read_file(path), policy, should_retry=is_transient
        )
        await with_retry(
            lambda: store.delete_file(path, current.sha, f"Delete blog post: {post_id}"),
            policy,
            should_retry=is_transient,
        )
    finally:
        cache.invalidate_scope(store.owner, store.repo)
    logger.info("Deleted blog post %s in %s/%s", post_id, store.owner, store.repo)
