import hashlib
import json
import logging
from typing import Iterable

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession

from vlog.config import settings

logger = logging.getLogger(__name__)

# Session.info key holding post invalidations queued until commit
_PENDING_KEY = "vlog.cache.pending_posts"


class CacheManager:
    """
    Cache-aside store for post reads, backed by Redis.

    Every method is a no-op (reads miss) while Redis is unreachable, so a
    cache outage slows requests down but never fails them.  Keys are
    namespaced with ``settings.CACHE_PREFIX``.
    """

    def __init__(self, prefix: str = settings.CACHE_PREFIX) -> None:
        self._redis: redis.Redis | None = None
        self._prefix = prefix
        self._hits: int = 0
        self._misses: int = 0

    def key(self, *parts) -> str:
        return ":".join([self._prefix, *(str(p) for p in parts)])

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:
            logger.warning("Redis ping failed, running without cache: %s", exc)
            await self._redis.aclose()
            self._redis = None

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> dict | list | None:
        if not self._redis:
            self._misses += 1
            return None
        try:
            data = await self._redis.get(key)
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            self._misses += 1
            return None
        if data is None:
            self._misses += 1
            return None
        self._hits += 1
        return json.loads(data)

    async def set(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete(self, *keys: str) -> None:
        if not self._redis or not keys:
            return
        try:
            await self._redis.delete(*keys)
        except Exception as exc:
            logger.debug("Cache DELETE error for keys=%r: %s", keys, exc)

    async def delete_pattern(self, pattern: str) -> None:
        """Delete every key matching *pattern* (SCAN, never KEYS)."""
        if not self._redis:
            return
        try:
            keys = [key async for key in self._redis.scan_iter(match=pattern)]
            if keys:
                await self._redis.delete(*keys)
                logger.debug("Cache invalidated %d key(s) matching %r", len(keys), pattern)
        except Exception as exc:
            logger.debug("Cache DELETE_PATTERN error for pattern=%r: %s", pattern, exc)

    # ------------------------------------------------------------------
    # Post invalidation
    # ------------------------------------------------------------------

    async def invalidate_posts(self, post_ids: Iterable[int] = ()) -> None:
        """
        Drop every cached post list page plus the detail entries for
        *post_ids*.  List pages embed counts and tags of many posts, so any
        post write makes all of them stale.
        """
        await self.delete_pattern(self.key("posts", "list", "*"))
        await self.delete(*(self.key("posts", "detail", pid) for pid in post_ids))

    async def invalidate_all_posts(self) -> None:
        await self.delete_pattern(self.key("posts", "*"))

    def queue_post_invalidation(
        self, db: AsyncSession, post_ids: Iterable[int] = (), everything: bool = False
    ) -> None:
        """
        Record post keys to drop once *db*'s transaction commits.

        Invalidating before the commit would let a concurrent read re-cache
        rows that are about to change, so services only queue here and
        ``get_db`` calls ``apply_post_invalidation`` after committing.
        """
        pending = db.info.setdefault(_PENDING_KEY, {"post_ids": set(), "everything": False})
        pending["post_ids"].update(post_ids)
        pending["everything"] = pending["everything"] or everything

    async def apply_post_invalidation(self, db: AsyncSession) -> None:
        pending = db.info.pop(_PENDING_KEY, None)
        if pending is None:
            return
        if pending["everything"]:
            await self.invalidate_all_posts()
        else:
            await self.invalidate_posts(sorted(pending["post_ids"]))

    def discard_post_invalidation(self, db: AsyncSession) -> None:
        db.info.pop(_PENDING_KEY, None)

    # ------------------------------------------------------------------
    # Revoked access tokens
    # ------------------------------------------------------------------

    def _revoked_key(self, token: str) -> str:
        return self.key("revoked", hashlib.sha256(token.encode()).hexdigest())

    async def revoke_token(self, token: str, ttl: int) -> bool:
        """Deny *token* for *ttl* seconds.  Returns False when Redis is down."""
        if not self._redis:
            return False
        try:
            await self._redis.set(self._revoked_key(token), "1", ex=ttl)
        except Exception as exc:
            logger.warning("Could not revoke token: %s", exc)
            return False
        return True

    async def is_token_revoked(self, token: str) -> bool:
        if not self._redis:
            return False
        try:
            return bool(await self._redis.exists(self._revoked_key(token)))
        except Exception as exc:
            logger.debug("Cache EXISTS error for revoked token: %s", exc)
            return False

    @property
    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "connected": self._redis is not None,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


# Module-level singleton shared across request handlers.
cache = CacheManager()
