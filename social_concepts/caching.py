"""
Caching layer for action checks.
"""

from datetime import datetime, timedelta
from typing import Dict, Any

from .ledger import PermissionLedger
from .models import Action


class CachedPermissionLedger(PermissionLedger):
    """
    Permission ledger that caches ``is_allowed`` decisions.

    Action checks run before every guarded route, so caching saves a store
    round trip per request. Entries for a user are dropped whenever that
    user's denials change through this instance. Other instances sharing the
    store may observe a stale decision for at most the TTL.
    """

    def __init__(
        self,
        *args,
        cache_ttl_seconds: int = 60,
        denial_ttl_seconds: int = 10,
        max_entries: int = 10_000,
        **kwargs
    ):
        """
        Initialize the cached ledger.

        Args:
            *args: Arguments passed to parent PermissionLedger
            cache_ttl_seconds: Time-to-live for "allowed" entries in seconds
            denial_ttl_seconds: Time-to-live for "denied" entries in seconds
            max_entries: Upper bound on cached decisions
            **kwargs: Keyword arguments passed to parent PermissionLedger
        """
        super().__init__(*args, **kwargs)
        self.cache: Dict[str, Dict[str, Any]] = {}
        self.cache_ttl = cache_ttl_seconds
        self.denial_ttl = denial_ttl_seconds
        self.max_entries = max_entries

    async def is_allowed(self, user: str, action: Any) -> bool:
        action = Action.parse(action)
        cache_key = f"{user}:{action.value}"

        if cache_key in self.cache:
            entry = self.cache[cache_key]
            if datetime.utcnow() < entry["expires_at"]:
                return entry["result"]
            del self.cache[cache_key]

        result = await super().is_allowed(user, action)

        if len(self.cache) >= self.max_entries:
            self._evict()
        ttl = self.cache_ttl if result else self.denial_ttl
        self.cache[cache_key] = {
            "result": result,
            "expires_at": datetime.utcnow() + timedelta(seconds=ttl)
        }
        return result

    def _evict(self):
        """Drop expired entries, then the oldest ones, until there is room."""
        now = datetime.utcnow()
        for key in [k for k, e in self.cache.items() if e["expires_at"] <= now]:
            del self.cache[key]
        while len(self.cache) >= self.max_entries:
            del self.cache[next(iter(self.cache))]

    def invalidate_user_cache(self, user: str):
        """Invalidate all cache entries for a user."""
        prefix = f"{user}:"
        keys_to_delete = [k for k in self.cache if k.startswith(prefix)]
        for key in keys_to_delete:
            del self.cache[key]

    async def deny(self, user: str, action: Any) -> Dict[str, Any]:
        try:
            return await super().deny(user, action)
        finally:
            self.invalidate_user_cache(user)

    async def allow(self, user: str, action: Any) -> Dict[str, Any]:
        try:
            return await super().allow(user, action)
        finally:
            self.invalidate_user_cache(user)

    async def purge_user(self, user: str) -> Dict[str, Any]:
        self.invalidate_user_cache(user)
        return await super().purge_user(user)
