from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

from social_concepts.caching import CachedPermissionLedger


def test_allowed_decision_is_served_from_cache(fga) -> None:
    ledger = CachedPermissionLedger(fga, cache_ttl_seconds=60)

    async def scenario():
        assert await ledger.is_allowed("bob", "Post") is True
        assert await ledger.is_allowed("bob", "Post") is True

    asyncio.run(scenario())
    assert fga.checks == 1
    assert "bob:Post" in ledger.cache


def test_deny_and_allow_invalidate_the_users_entries(fga) -> None:
    ledger = CachedPermissionLedger(fga, cache_ttl_seconds=60)

    async def scenario():
        assert await ledger.is_allowed("bob", "Post") is True
        assert await ledger.is_allowed("carol", "Post") is True
        await ledger.deny("bob", "Post")
        assert "bob:Post" not in ledger.cache
        assert "carol:Post" in ledger.cache
        assert await ledger.is_allowed("bob", "Post") is False
        await ledger.allow("bob", "Post")
        assert await ledger.is_allowed("bob", "Post") is True

    asyncio.run(scenario())


def test_expired_entries_are_rechecked(fga) -> None:
    ledger = CachedPermissionLedger(fga, cache_ttl_seconds=60)

    async def scenario():
        await ledger.is_allowed("bob", "Nudge")
        ledger.cache["bob:Nudge"]["expires_at"] = datetime.utcnow() - timedelta(seconds=1)
        await ledger.is_allowed("bob", "Nudge")

    asyncio.run(scenario())
    assert fga.checks == 2


def test_denials_use_the_shorter_ttl(fga) -> None:
    ledger = CachedPermissionLedger(fga, cache_ttl_seconds=600, denial_ttl_seconds=5)

    async def scenario():
        await ledger.deny("bob", "Friend")
        await ledger.is_allowed("bob", "Friend")

    asyncio.run(scenario())
    remaining = ledger.cache["bob:Friend"]["expires_at"] - datetime.utcnow()
    assert remaining <= timedelta(seconds=5)


def test_purge_user_drops_cached_entries(fga) -> None:
    ledger = CachedPermissionLedger(fga)

    async def scenario():
        await ledger.deny("bob", "Post")
        assert await ledger.is_allowed("bob", "Post") is False
        await ledger.purge_user("bob")
        assert await ledger.is_allowed("bob", "Post") is True

    asyncio.run(scenario())


def test_expired_entry_is_dropped_on_lookup(fga) -> None:
    ledger = CachedPermissionLedger(fga, cache_ttl_seconds=60)

    async def scenario():
        await ledger.is_allowed("alice", "Post")
        await ledger.is_allowed("bob", "Post")
        ledger.cache["alice:Post"]["expires_at"] = datetime.utcnow() - timedelta(seconds=1)
        assert await ledger.is_allowed("alice", "Post") is True

    asyncio.run(scenario())
    assert list(ledger.cache) == ["bob:Post", "alice:Post"]
    assert ledger.cache["alice:Post"]["expires_at"] > datetime.utcnow()


def test_cache_size_is_bounded(fga) -> None:
    ledger = CachedPermissionLedger(fga, max_entries=2)

    async def scenario():
        await ledger.is_allowed("alice", "Post")
        await ledger.is_allowed("bob", "Post")
        await ledger.is_allowed("carol", "Post")

    asyncio.run(scenario())
    assert list(ledger.cache) == ["bob:Post", "carol:Post"]


def test_expired_entries_are_evicted_before_live_ones(fga) -> None:
    ledger = CachedPermissionLedger(fga, max_entries=2)

    async def scenario():
        await ledger.is_allowed("alice", "Post")
        await ledger.is_allowed("bob", "Post")
        ledger.cache["bob:Post"]["expires_at"] = datetime.utcnow() - timedelta(seconds=1)
        await ledger.is_allowed("carol", "Post")

    asyncio.run(scenario())
    assert list(ledger.cache) == ["alice:Post", "carol:Post"]
