"""Tests for the thoughts ledger."""

import asyncio
import json

import pytest

from api.services.bootstrap import THOUGHTS_PATH
from api.services.errors import NotFoundError, RateLimitedError, StoreError
from api.services.thoughts import (
    create_thought,
    delete_thought,
    list_thoughts,
    next_thought_id,
    parse_ledger,
    serialize_ledger,
    update_thought,
)


class TestLedgerFormat:
    def test_empty_text_is_empty_ledger(self):
        assert parse_ledger("") == []
        assert parse_ledger("  \n") == []

    def test_invalid_json_raises(self):
        with pytest.raises(StoreError):
            parse_ledger("{not json")

    def test_non_array_raises(self):
        with pytest.raises(StoreError):
            parse_ledger('{"id": "1"}')

    def test_serialized_with_two_space_indent_and_raw_unicode(self):
        text = serialize_ledger([{"id": "1", "content": "café"}])
        assert text == '[\n  {\n    "id": "1",\n    "content": "café"\n  }\n]'


class TestNextThoughtId:
    def test_uses_current_time(self):
        assert next_thought_id([], now_ms=1700000000000) == "1700000000000"

    def test_bumped_past_existing_ids(self):
        ledger = [{"id": "1700000000005"}, {"id": "1700000000003"}]
        assert next_thought_id(ledger, now_ms=1700000000000) == "1700000000006"

    def test_non_numeric_ids_ignored(self):
        ledger = [{"id": "legacy-abc"}]
        assert next_thought_id(ledger, now_ms=5) == "5"


async def test_create_list_delete_roundtrip(store, fake_github, cache, fast_policy):
    hello = await create_thought(store, cache, "hello", policy=fast_policy)
    world = await create_thought(store, cache, "world", policy=fast_policy)

    listed = await list_thoughts(store, cache, fast_policy)
    assert [t.content for t in listed] == ["world", "hello"]
    assert hello.id != world.id

    await delete_thought(store, cache, hello.id, fast_policy)

    listed = await list_thoughts(store, cache, fast_policy)
    assert [t.content for t in listed] == ["world"]
    assert fake_github.ledger() == [world.model_dump(exclude_none=True)]


async def test_image_key_only_present_when_set(store, fake_github, cache, fast_policy):
    await create_thought(store, cache, "plain", policy=fast_policy)
    await create_thought(
        store, cache, "pic", image="https://example.com/a.png", policy=fast_policy
    )
    pic, plain = fake_github.ledger()
    assert pic["image"] == "https://example.com/a.png"
    assert "image" not in plain


async def test_missing_ledger_lists_as_empty(store, fake_github, cache, fast_policy):
    del fake_github.files[THOUGHTS_PATH]
    assert await list_thoughts(store, cache, fast_policy) == []


async def test_missing_ledger_is_recreated_on_write(store, fake_github, cache, fast_policy):
    del fake_github.files[THOUGHTS_PATH]
    await create_thought(store, cache, "first", policy=fast_policy)
    assert [t["content"] for t in fake_github.ledger()] == ["first"]


async def test_unknown_fields_survive_a_rewrite(store, fake_github, cache, fast_policy):
    fake_github.put(
        THOUGHTS_PATH,
        json.dumps([{"id": "1", "content": "old", "timestamp": "t", "mood": "calm"}]),
    )
    await update_thought(store, cache, "1", "new", fast_policy)
    assert fake_github.ledger() == [
        {"id": "1", "content": "new", "timestamp": "t", "mood": "calm"}
    ]


async def test_malformed_entries_are_skipped_when_listing(
    store, fake_github, cache, fast_policy
):
    fake_github.put(
        THOUGHTS_PATH,
        json.dumps(
            [
                {"id": "3", "content": "fine", "timestamp": "t3"},
                {"id": "2", "content": "no timestamp"},
                "not an object",
                {"id": "1", "content": "also fine", "timestamp": "t1"},
            ]
        ),
    )

    listed = await list_thoughts(store, cache, fast_policy)

    assert [t.id for t in listed] == ["3", "1"]


async def test_malformed_entries_survive_a_rewrite(store, fake_github, cache, fast_policy):
    fake_github.put(
        THOUGHTS_PATH,
        json.dumps(
            [
                {"id": "2", "content": "no timestamp"},
                {"id": "1", "content": "a", "timestamp": "t"},
            ]
        ),
    )
    await update_thought(store, cache, "1", "b", fast_policy)
    assert fake_github.ledger()[0] == {"id": "2", "content": "no timestamp"}


async def test_undecodable_ledger_falls_back_to_stale(store, fake_github, cache, fast_policy):
    await create_thought(store, cache, "cached", policy=fast_policy)
    listed = await list_thoughts(store, cache, fast_policy)
    cache.set(f"thoughts:{store.owner}:{store.repo}", listed, ttl=0)

    fake_github.put(THOUGHTS_PATH, b"[\xff]")

    listed = await list_thoughts(store, cache, fast_policy)
    assert [t.content for t in listed] == ["cached"]


class TestConcurrentWriters:
    """Appends from concurrent writers must not be lost."""

    async def test_write_after_concurrent_append_is_retried(
        self, store, fake_github, cache, fast_policy
    ):
        other = {"id": "1", "content": "from another tab", "timestamp": "t"}
        sneaked = []

        def another_tab_writes_first(request):
            if request.method == "PUT" and request.url.path.endswith(THOUGHTS_PATH) and not sneaked:
                sneaked.append(True)
                fake_github.put(THOUGHTS_PATH, json.dumps([other]))

        fake_github.before_request = another_tab_writes_first
        await create_thought(store, cache, "mine", policy=fast_policy)

        assert [t["content"] for t in fake_github.ledger()] == ["mine", "from another tab"]
        assert fake_github.count("PUT", THOUGHTS_PATH) == 2

    async def test_parallel_creates_both_land(self, store, fake_github, cache, fast_policy):
        await asyncio.gather(
            create_thought(store, cache, "a", policy=fast_policy),
            create_thought(store, cache, "b", policy=fast_policy),
        )
        ledger = fake_github.ledger()
        assert sorted(t["content"] for t in ledger) == ["a", "b"]
        assert len({t["id"] for t in ledger}) == 2

    async def test_persistent_conflicts_give_up(self, store, fake_github, cache, fast_policy):
        fake_github.fail("PUT", THOUGHTS_PATH, 409, times=10)
        with pytest.raises(StoreError):
            await create_thought(store, cache, "never", policy=fast_policy)
        assert fake_github.count("PUT", THOUGHTS_PATH) == fast_policy.max_attempts


class TestUpdateDelete:
    async def test_update_replaces_content_only(self, store, fake_github, cache, fast_policy):
        thought = await create_thought(store, cache, "draft", policy=fast_policy)
        updated = await update_thought(store, cache, thought.id, "final", fast_policy)
        assert updated.content == "final"
        assert updated.timestamp == thought.timestamp
        assert fake_github.ledger()[0]["content"] == "final"

    async def test_update_unknown_id_raises_without_writing(
        self, store, fake_github, cache, fast_policy
    ):
        with pytest.raises(NotFoundError):
            await update_thought(store, cache, "999", "x", fast_policy)
        assert fake_github.count("PUT", THOUGHTS_PATH) == 0

    async def test_delete_unknown_id_raises_without_writing(
        self, store, fake_github, cache, fast_policy
    ):
        with pytest.raises(NotFoundError):
            await delete_thought(store, cache, "999", fast_policy)
        assert fake_github.count("PUT", THOUGHTS_PATH) == 0


class TestCaching:
    async def test_list_is_cached(self, store, fake_github, cache, fast_policy):
        await list_thoughts(store, cache, fast_policy)
        await list_thoughts(store, cache, fast_policy)
        assert fake_github.count("GET", THOUGHTS_PATH) == 1

    async def test_writes_invalidate_the_list(self, store, cache, fast_policy):
        assert await list_thoughts(store, cache, fast_policy) == []
        await create_thought(store, cache, "new", policy=fast_policy)
        assert [t.content for t in await list_thoughts(store, cache, fast_policy)] == ["new"]

    async def test_stale_list_served_when_remote_fails(
        self, store, fake_github, cache, fast_policy
    ):
        await create_thought(store, cache, "cached", policy=fast_policy)
        listed = await list_thoughts(store, cache, fast_policy)
        # Expire the entry without dropping it
        cache.set(f"thoughts:{store.owner}:{store.repo}", listed, ttl=0)

        fake_github.fail("GET", THOUGHTS_PATH, 503, times=10)
        listed = await list_thoughts(store, cache, fast_policy)
        assert [t.content for t in listed] == ["cached"]

    async def test_rate_limit_without_cache_propagates(self, store, fake_github, cache, fast_policy):
        fake_github.fail("GET", THOUGHTS_PATH, 429)
        with pytest.raises(RateLimitedError):
            await list_thoughts(store, cache, fast_policy)
        assert fake_github.count("GET", THOUGHTS_PATH) == 1
