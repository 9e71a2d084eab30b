"""Image uploads to ``assets/images/<YYYY-MM-DD>/<timestamp>.<ext>``.

Paths are always freshly generated, so uploads are plain creates with no
precondition, and an uploaded image is never rewritten.
"""

import logging
from datetime import datetime, timezone
from pathlib import PurePosixPath

from api.config import get_settings
from api.services.bootstrap import create_if_missing, ensure_structure
from api.services.cache import BoundedCache
from api.services.errors import InvalidInputError, StoreError
from api.services.github_store import GitHubStore
from api.services.retry import RetryPolicy, is_transient, with_retry

logger = logging.getLogger(__name__)

IMAGES_DIR = "assets/images"
ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}


def image_extension(filename: str) -> str:
    """Lower-cased extension of *filename*; raises InvalidInputError if unsupported."""
    ext = PurePosixPath(filename).suffix.lower().lstrip(".")
    if ext not in ALLOWED_EXTENSIONS:
        raise InvalidInputError(
            f"Unsupported image type {ext or filename!r}; "
            f"expected one of {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )
    return ext


def image_path(ext: str, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    stamp = int(now.timestamp() * 1000)
    return f"{IMAGES_DIR}/{now:%Y-%m-%d}/{stamp}.{ext}"


def image_url(owner: str, repo: str, branch: str, path: str) -> str:
    return f"https://github.com/{owner}/{repo}/blob/{branch}/{path}?raw=true"


async def upload_image(
    store: GitHubStore,
    cache: BoundedCache,
    data: bytes,
    filename: str,
    policy: RetryPolicy | None = None,
) -> str:
    """Store an image and return its GitHub URL."""
    ext = image_extension(filename)
    if not data:
        raise InvalidInputError("Image is empty")
    limit = get_settings().max_image_bytes
    if len(data) > limit:
        raise InvalidInputError(f"Image exceeds {limit} bytes")

    await ensure_structure(store, cache, policy)
    try:
        await create_if_missing(
            store, f"{IMAGES_DIR}/.gitkeep", "", "Initialize images directory"
        )
    except StoreError as e:
        # GitHub creates parent directories on write anyway
        logger.warning("Could not ensure %s in %s/%s: %s", IMAGES_DIR, store.owner, store.repo, e)

    path = image_path(ext)
    await with_retry(
        lambda: store.write_file(path, data, f"Upload image {PurePosixPath(path).name}"),
        policy,
        should_retry=is_transient,
    )
    branch = await with_retry(store.get_default_branch, policy, should_retry=is_transient)
    logger.info("Uploaded image %s to %s/%s", path, store.owner, store.repo)
    return image_url(store.owner, store.repo, branch, path)
