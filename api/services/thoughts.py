"""Thoughts ledger — every thought for a user in ``content/thoughts.json``.

The ledger is a JSON array, newest first.  Every mutation is a full
read-modify-write of the file, conditioned on the sha that was read.  When
another writer got there first the write fails with ConflictError and the
whole cycle (read included) is retried, so concurrent appends are not lost.
"""

import json
import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

from pydantic import ValidationError

from api.models.store import FileResult, Missing
from api.models.thought import Thought
from api.services.bootstrap import THOUGHTS_PATH, ensure_structure
from api.services.cache import BoundedCache
from api.services.errors import NotFoundError, StoreError
from api.services.github_store import GitHubStore
from api.services.post_format import iso_now
from api.services.retry import RetryPolicy, is_transient, with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

Ledger = list[dict[str, Any]]


def _ledger_key(store: GitHubStore) -> str:
    return store.cache_key("thoughts")


def parse_ledger(text: str) -> Ledger:
    """Decode ledger JSON. An empty file is an empty ledger."""
    if not text.strip():
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise StoreError(f"{THOUGHTS_PATH} is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise StoreError(f"{THOUGHTS_PATH} is not a JSON array")
    return data


def serialize_ledger(ledger: Ledger) -> str:
    return json.dumps(ledger, indent=2, ensure_ascii=False)


async def read_ledger(store: GitHubStore) -> tuple[Ledger, str | None]:
    """Return (ledger, sha). A missing ledger is empty with no sha."""
    result = await store.get_content(THOUGHTS_PATH)
    if isinstance(result, FileResult):
        try:
            text = result.text()
        except UnicodeDecodeError as e:
            raise StoreError(f"{THOUGHTS_PATH} is not valid UTF-8") from e
        return parse_ledger(text), result.sha
    if isinstance(result, Missing):
        return [], None
    raise StoreError(f"{THOUGHTS_PATH} is a directory")


def next_thought_id(ledger: Ledger, now_ms: int | None = None) -> str:
    """Millisecond timestamp id, bumped past any id already in the ledger."""
    candidate = now_ms if now_ms is not None else int(time.time() * 1000)
    numeric = [
        int(t["id"])
        for t in ledger
        if isinstance(t, dict) and str(t.get("id", "")).isdigit()
    ]
    if numeric and candidate <= max(numeric):
        candidate = max(numeric) + 1
    return str(candidate)


def _find(ledger: Ledger, thought_id: str) -> int:
    for index, entry in enumerate(ledger):
        if isinstance(entry, dict) and str(entry.get("id")) == thought_id:
            return index
    raise NotFoundError(f"Thought {thought_id} not found", status=404)


async def _mutate_ledger(
    store: GitHubStore,
    cache: BoundedCache,
    mutate: Callable[[Ledger], T],
    message: str,
    policy: RetryPolicy | None,
) -> T:
    """Run one optimistic read-modify-write cycle, retried on conflict."""

    async def _cycle() -> T:
        ledger, sha = await read_ledger(store)
        outcome = mutate(ledger)
        await store.write_file(
            THOUGHTS_PATH, serialize_ledger(ledger), message, expected_sha=sha
        )
        return outcome

    try:
        return await with_retry(_cycle, policy, context=f"{message} ({store.owner})")
    finally:
        cache.invalidate_scope(store.owner, store.repo)


def ledger_thoughts(ledger: Ledger) -> list[Thought]:
    """Validate ledger entries, skipping (and logging) malformed records."""
    thoughts: list[Thought] = []
    for index, entry in enumerate(ledger):
        try:
            thoughts.append(Thought.model_validate(entry))
        except ValidationError as e:
            logger.warning(
                "Skipping malformed entry %d in %s: %s", index, THOUGHTS_PATH, e
            )
    return thoughts


async def list_thoughts(
    store: GitHubStore, cache: BoundedCache, policy: RetryPolicy | None = None
) -> list[Thought]:
    """Return the ledger, newest first. A missing ledger lists as empty."""
    key = _ledger_key(store)
    cached = cache.get(key)
    if cached is not None:
        return cached

    try:
        ledger, sha = await with_retry(
            lambda: read_ledger(store), policy, should_retry=is_transient
        )
    except StoreError as e:
        stale = cache.get_stale(key)
        if stale is not None:
            logger.warning("Serving stale thoughts for %s/%s: %s", store.owner, store.repo, e)
            return stale
        raise

    thoughts = ledger_thoughts(ledger)
    # Anonymous readers also see a private repository's ledger as missing
    if sha is not None or not store.public:
        cache.set(key, thoughts)
    return thoughts


async def create_thought(
    store: GitHubStore,
    cache: BoundedCache,
    content: str,
    image: str | None = None,
    policy: RetryPolicy | None = None,
) -> Thought:
    """Prepend a new thought to the ledger and return it."""
    await ensure_structure(store, cache, policy)

    def _prepend(ledger: Ledger) -> Thought:
        entry: dict[str, Any] = {
            "id": next_thought_id(ledger),
            "content": content,
            "timestamp": iso_now(),
        }
        if image:
            entry["image"] = image
        ledger.insert(0, entry)
        return Thought.model_validate(entry)

    thought = await _mutate_ledger(store, cache, _prepend, "Add new thought", policy)
    logger.info("Created thought %s in %s/%s", thought.id, store.owner, store.repo)
    return thought


async def update_thought(
    store: GitHubStore,
    cache: BoundedCache,
    thought_id: str,
    content: str,
    policy: RetryPolicy | None = None,
) -> Thought:
    """Replace a thought's content in place. Raises NotFoundError if absent."""
    await ensure_structure(store, cache, policy)

    def _splice(ledger: Ledger) -> Thought:
        index = _find(ledger, thought_id)
        entry = {**ledger[index], "content": content}
        ledger[index] = entry
        return Thought.model_validate(entry)

    thought = await _mutate_ledger(
        store, cache, _splice, f"Update thought {thought_id}", policy
    )
    logger.info("Updated thought %s in %s/%s", thought_id, store.owner, store.repo)
    return thought


async def delete_thought(
    store: GitHubStore,
    cache: BoundedCache,
    thought_id: str,
    policy: RetryPolicy | None = None,
) -> None:
    """Remove a thought from the ledger. Raises NotFoundError if absent."""
    await ensure_structure(store, cache, policy)

    def _remove(ledger: Ledger) -> None:
        del ledger[_find(ledger, thought_id)]

    await _mutate_ledger(store, cache, _remove, f"Delete thought {thought_id}", policy)
    logger.info("Deleted thought %s in %s/%s", thought_id, store.owner, store.repo)
