"""Expiry reconciliation for time-bound article flags.

``isBreaking`` and ``isTopstory`` carry an expiry timestamp. Once the clock
passes it the flag has to drop, no later than the next read or the next
scheduled pass. Each pass is a single conditional bulk update, so running it
twice (or from two requests at once) just matches zero rows the second time.
"""

import logging

from sqlalchemy import update

from newsdesk.cache import CacheKeys, CacheLayer
from newsdesk.clock import Clock, utcnow
from newsdesk.db.engine import ContentStore
from newsdesk.db.models import ArticleRow
from newsdesk.sites import SITES

logger = logging.getLogger(__name__)


class ExpiryReconciler:
    def __init__(self, store: ContentStore, cache: CacheLayer, clock: Clock = utcnow) -> None:
        self._store = store
        self._cache = cache
        self._clock = clock

    async def reconcile_breaking(self, site: str) -> int:
        """Clear expired breaking flags (and their expiry) for ``site``."""
        count = await self._clear(
            site,
            ArticleRow.is_breaking,
            ArticleRow.breaking_expires_at,
            {"is_breaking": False, "breaking_expires_at": None},
        )
        if count:
            logger.info("Cleared %d expired breaking articles on %s", count, site)
        return count

    async def reconcile_topstory(self, site: str) -> int:
        """Clear expired top-story flags (and their expiry) for ``site``."""
        count = await self._clear(
            site,
            ArticleRow.is_topstory,
            ArticleRow.topstory_expires_at,
            {"is_topstory": False, "topstory_expires_at": None},
        )
        if count:
            logger.info("Cleared %d expired top stories on %s", count, site)
        return count

    async def reconcile(self, site: str) -> dict[str, int]:
        return {
            "breaking": await self.reconcile_breaking(site),
            "topstory": await self.reconcile_topstory(site),
        }

    async def reconcile_all(self) -> dict[str, dict[str, int]]:
        return {site: await self.reconcile(site) for site in SITES}

    async def _clear(self, site: str, flag, expires_at, values: dict) -> int:
        now = self._clock()
        async with self._store.session() as session:
            result = await session.execute(
                update(ArticleRow)
                .where(
                    ArticleRow.site == site,
                    flag.is_(True),
                    expires_at.is_not(None),
                    expires_at < now,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        count = result.rowcount or 0
        if count:
            # Listings, single items and the headline all embed the flags
            await self._cache.invalidate(*CacheKeys(site).flag_patterns())
        return count
