"""Cache-aside layer over Redis.

The cache is never a source of truth. Every read has a store fallback, every
write invalidates conservatively, and a Redis failure only costs latency: the
``fail_open`` decorator turns any backing error into a miss or a no-op.

Key layout: ``{site}:{entity}:{kind}:{param}:{param}…``, see ``CacheKeys``.
"""

import functools
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

T = TypeVar("T")

# TTLs (seconds); None = no expiry, explicitly invalidated on write
TTL_VOLATILE = 60
TTL_LISTING = 300
TTL_ITEM = 1800
TTL_FOREVER = None


def fail_open(default: Any = None) -> Callable:
    """Log and swallow backing-store failures, returning ``default``."""

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(self: "CacheLayer", *args: Any, **kwargs: Any) -> T:
            try:
                if not await self.connect():
                    return default
                return await fn(self, *args, **kwargs)
            except Exception:
                logger.warning("Cache %s failed; continuing without cache", fn.__name__, exc_info=True)
                return default

        return wrapper

    return decorator


class CacheLayer:
    """Best-effort JSON cache.

    Constructed once per process. ``connect()`` is idempotent and gated by the
    ``connected`` flag; two concurrent first calls may both ping, which is
    harmless. A failed ping leaves the layer disconnected so the next access
    tries again.
    """

    def __init__(self, url: str | None = None, *, client: aioredis.Redis | None = None) -> None:
        if url is None and client is None:
            raise ValueError("CacheLayer needs a url or a client")
        self._url = url
        self._client = client
        self.connected = False

    async def connect(self) -> bool:
        if self.connected:
            return True
        if self._client is None:
            self._client = aioredis.from_url(self._url, decode_responses=True)
        try:
            await self._client.ping()
        except Exception:
            logger.warning("Redis unreachable; serving from the store", exc_info=True)
            return False
        self.connected = True
        logger.info("Connected to Redis")
        return True

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
        self.connected = False

    @fail_open(default=None)
    async def get(self, key: str) -> Any | None:
        raw = await self._client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    @fail_open(default=None)
    async def set(self, key: str, value: Any, ttl: int | None = TTL_LISTING) -> None:
        payload = json.dumps(value)
        if ttl is None:
            await self._client.set(key, payload)
        else:
            await self._client.set(key, payload, ex=ttl)

    @fail_open(default=0)
    async def invalidate(self, *patterns: str) -> int:
        """Delete every key matching any of the glob ``patterns``."""
        removed = 0
        for pattern in patterns:
            keys = [key async for key in self._client.scan_iter(match=pattern, count=500)]
            if keys:
                removed += await self._client.delete(*keys)
        if removed:
            logger.debug("Invalidated %d cache keys for %s", removed, patterns)
        return removed


def _part(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class CacheKeys:
    """Key and pattern builder for one site.

    Parameters are joined in the order given, so two identical queries always
    produce the same key.
    """

    def __init__(self, site: str) -> None:
        self.site = site

    def key(self, entity: str, kind: str, *params: Any) -> str:
        return ":".join([self.site, entity, kind, *(_part(p) for p in params)])

    def pattern(self, entity: str, kind: str | None = None) -> str:
        if kind is None:
            return f"{self.site}:{entity}:*"
        return f"{self.site}:{entity}:{kind}:*"

    # Articles

    def article_id(self, article_id: str) -> str:
        return self.key("article", "id", article_id)

    def article_slug(self, slug: str) -> str:
        return self.key("article", "slug", slug)

    def articles(self, kind: str, *params: Any) -> str:
        return self.key("articles", kind, *params)

    def headline(self) -> str:
        return self.key("headline", "current")

    def breaking(self, limit: int) -> str:
        return self.key("breaking", "list", limit)

    def topstories(self, limit: int) -> str:
        return self.key("topstories", "list", limit)

    def comments(self, slug: str, sort: str, page: int, limit: int) -> str:
        return self.key("comments", slug, sort, page, limit)

    def article_patterns(self) -> list[str]:
        """Every namespace an article write can make stale."""
        return [
            self.pattern("articles"),
            self.pattern("article"),
            self.pattern("headline"),
            self.pattern("breaking"),
            self.pattern("topstories"),
            self.pattern("comments"),
        ]

    def flag_patterns(self) -> list[str]:
        """Namespaces exposing breaking/topstory flags."""
        return self.article_patterns()

    # Sections

    def section(self, by: str, value: str) -> str:
        return self.key("section", by, value)

    def sections(self, kind: str, *params: Any) -> str:
        return self.key("sections", kind, *params)

    def section_patterns(self, slug: str | None = None) -> list[str]:
        patterns = [self.pattern("sections"), self.pattern("section")]
        if slug:
            patterns.append(f"{self.site}:articles:section:{slug}:*")
        return patterns

    # Stories

    def story(self, kind: str, by: str, value: str) -> str:
        return self.key(kind, by, value)

    def stories(self, kind: str, query: str, *params: Any) -> str:
        return self.key(f"{kind}s", query, *params)

    def story_patterns(self, kind: str) -> list[str]:
        return [self.pattern(kind), self.pattern(f"{kind}s")]


async def cached(
    cache: CacheLayer,
    key: str,
    ttl: int | None,
    loader: Callable[[], Awaitable[T]],
) -> tuple[T, bool]:
    """Cache-aside read: return ``(value, hit)``.

    ``loader`` runs on a miss and its result is stored unless it is None.
    """
    hit = await cache.get(key)
    if hit is not None:
        return hit, True
    value = await loader()
    if value is not None:
        await cache.set(key, value, ttl)
    return value, False
