"""Bounded in-memory cache with per-entry TTL and stale fallback."""

import time
from collections import OrderedDict
from typing import Any


class BoundedCache:
    """In-memory cache with per-entry time-to-live and max-size eviction.

    Eviction is by insertion order: once ``max_size`` is reached, adding a
    new key drops the entry that was inserted first.  Reads never reorder
    entries.  Expiry is checked lazily on access; there is no sweeper.

    Usage::

        cache = BoundedCache(max_size=100, ttl=300)
        cache.set("blog-posts:octocat:tinymind-blog", posts)
        hit = cache.get("blog-posts:octocat:tinymind-blog")  # None if expired
        old = cache.get_stale("blog-posts:octocat:tinymind-blog")
    """

    def __init__(self, max_size: int = 1000, ttl: float = 300) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._ttl = ttl
        # key -> (value, expires_at)
        self._store: OrderedDict[str, tuple[Any, float]] = OrderedDict()

    def get(self, key: str) -> Any | None:
        """Return the cached value if present and not expired, else None.

        Expired entries are kept in the store so that ``get_stale`` can
        return them as a fallback when a fresh fetch fails.
        """
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.time() >= expires_at:
            return None
        return value

    def get_stale(self, key: str) -> Any | None:
        """Return the cached value even if expired, or None if missing.

        Used as a fallback when a fresh fetch fails: serve last-known-good
        data rather than an error.  Does NOT delete the entry so subsequent
        stale reads still work within a burst of failures.
        """
        entry = self._store.get(key)
        if entry is None:
            return None
        value, _expires_at = entry
        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store *value* under *key*, evicting the oldest entry if at capacity.

        Overwriting an existing key keeps its original insertion position.
        """
        expires_at = time.time() + (self._ttl if ttl is None else ttl)
        if key not in self._store:
            while len(self._store) >= self._max_size:
                self._store.popitem(last=False)
        self._store[key] = (value, expires_at)

    def delete(self, key: str) -> bool:
        return self._store.pop(key, None) is not None

    def invalidate_scope(self, owner: str, repo: str) -> int:
        """Drop every entry whose key is scoped to ``{kind}:{owner}:{repo}``.

        This covers both the owner's and the public view of the repository,
        since the public view only differs in its ``public-`` kind prefix.

        Returns the number of entries removed.
        """
        doomed = [
            key
            for key in self._store
            if key.split(":")[1:3] == [owner, repo]
        ]
        for key in doomed:
            del self._store[key]
        return len(doomed)

    def clear(self) -> None:
        self._store.clear()

    def keys(self) -> list[str]:
        return list(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
