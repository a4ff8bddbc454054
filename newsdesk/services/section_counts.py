"""Section ``articles_count`` maintenance.

The count is denormalized and not kept transactionally: writes nudge it by
one, reads recount lazily, and ``recount_all`` fixes any drift left by racing
writers. Between a write and the next read the number may be off; it heals.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from newsdesk.cache import CacheKeys, CacheLayer
from newsdesk.db.engine import ContentStore
from newsdesk.db.models import ArticleRow, SectionRow

logger = logging.getLogger(__name__)


async def count_articles(session: AsyncSession, site: str, section_slug: str) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(ArticleRow)
        .where(
            ArticleRow.site == site,
            ArticleRow.has_section.is_(True),
            ArticleRow.section_slug == section_slug,
        )
    )
    return result.scalar_one()


class SectionCountSynchronizer:
    def __init__(self, store: ContentStore, cache: CacheLayer) -> None:
        self._store = store
        self._cache = cache

    async def correct(self, session: AsyncSession, section: SectionRow) -> bool:
        """Bring ``section.articles_count`` in line inside ``session``.

        Returns True when the row changed; the caller commits and invalidates.
        """
        actual = await count_articles(session, section.site, section.section_slug)
        if section.articles_count == actual:
            return False
        logger.info(
            "Section %s count drifted (%d -> %d)",
            section.section_slug, section.articles_count, actual,
        )
        section.articles_count = actual
        return True

    async def recount(self, site: str, section_slug: str) -> int | None:
        """Recount one section. Returns the new count, or None if it doesn't exist."""
        async with self._store.session() as session:
            section = (
                await session.execute(
                    select(SectionRow).where(
                        SectionRow.site == site, SectionRow.section_slug == section_slug
                    )
                )
            ).scalar_one_or_none()
            if section is None:
                return None
            changed = await self.correct(session, section)
            if changed:
                await session.commit()
            count = section.articles_count
        if changed:
            await self._cache.invalidate(*CacheKeys(site).section_patterns(section_slug))
        return count

    async def recount_all(self, site: str) -> dict[str, int]:
        """Recount every active section. Returns ``{"updated", "total"}``."""
        async with self._store.session() as session:
            sections = (
                await session.execute(
                    select(SectionRow).where(SectionRow.site == site, SectionRow.is_active.is_(True))
                )
            ).scalars().all()
            updated = 0
            for section in sections:
                if await self.correct(session, section):
                    updated += 1
            if updated:
                await session.commit()
        await self._cache.invalidate(*CacheKeys(site).section_patterns())
        logger.info("Synced article counts: %d of %d sections updated", updated, len(sections))
        return {"updated": updated, "total": len(sections)}
