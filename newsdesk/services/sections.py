"""Sections of the politics site.

A section groups articles under a name/code/slug triple that articles copy
onto themselves. Renaming a section rewrites those copies in bulk; deleting
one detaches its articles. ``articles_count`` is corrected lazily on single
reads (see ``SectionCountSynchronizer``).
"""

from __future__ import annotations

import logging
from dataclasses import astuple, dataclass
from datetime import timedelta
from typing import Any

from sqlalchemy import Select, Text, cast, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from newsdesk import slug as slugs
from newsdesk.cache import TTL_ITEM, TTL_LISTING, CacheKeys, CacheLayer, cached
from newsdesk.clock import Clock, as_utc, utcnow
from newsdesk.db.engine import ContentStore
from newsdesk.db.models import ArticleRow, SectionRow
from newsdesk.errors import Conflict, NotFound, ValidationFailed
from newsdesk.models.content import meta_description_for, meta_title_for
from newsdesk.models.section import SectionCreate, SectionUpdate
from newsdesk.services.articles import article_to_dict, like_pattern, page_payload, validate_id
from newsdesk.services.expiry import ExpiryReconciler
from newsdesk.services.section_counts import SectionCountSynchronizer
from newsdesk.sites import Site
from newsdesk.storage.blobs import BlobStore, Upload, validate_image

logger = logging.getLogger(__name__)

IMAGE_FOLDER = "sections"
MAX_FEATURED = 10
LOOKUPS = ("id", "slug", "code")


def _iso(dt) -> str | None:
    return dt.isoformat() if dt else None


def section_to_dict(s: SectionRow) -> dict[str, Any]:
    return {
        "id": s.id,
        "section_name": s.section_name,
        "section_code": s.section_code,
        "section_slug": s.section_slug,
        "section_description": s.section_description,
        "isSectionImportant": s.is_section_important,
        "expires_at": _iso(s.expires_at),
        "is_active": s.is_active,
        "tags": list(s.tags or []),
        "category": s.category,
        "subcategory": list(s.subcategory or []),
        "displayOrder": s.display_order,
        "meta_title": s.meta_title,
        "meta_description": s.meta_description,
        "section_image_url": s.section_image_url,
        "section_color": s.section_color,
        "section_background_color": s.section_background_color,
        "articles_count": s.articles_count,
        "featured_articles": list(s.featured_articles or []),
        "created_by": s.created_by,
        "updated_by": s.updated_by,
        "created_at": _iso(s.created_at),
        "updated_at": _iso(s.updated_at),
    }


@dataclass(frozen=True)
class SectionFilters:
    is_active: bool | None = None
    is_important: bool | None = None
    category: str | None = None
    tag: str | None = None
    search: str | None = None


class SectionService:
    def __init__(
        self,
        site: Site,
        store: ContentStore,
        cache: CacheLayer,
        blobs: BlobStore,
        counts: SectionCountSynchronizer,
        reconciler: ExpiryReconciler,
        *,
        clock: Clock = utcnow,
    ) -> None:
        if not site.has_sections:
            raise ValueError(f"{site.name} has no sections")
        self.site = site
        self.keys = CacheKeys(site.key)
        self._store = store
        self._cache = cache
        self._blobs = blobs
        self._counts = counts
        self._reconciler = reconciler
        self._clock = clock

    # ── Writes ──

    async def create(self, body: SectionCreate, image: Upload | None = None) -> dict:
        if image is not None:
            validate_image(image)
        section_slug = slugs.generate(body.section_slug or body.section_name)
        if not section_slug:
            raise ValidationFailed("Section name must contain at least one letter or digit")
        code = body.section_code.upper()

        async with self._store.session() as session:
            await self._ensure_unique(session, section_slug, code)

            image_url = body.section_image_url
            if image is not None:
                image_url = await self._blobs.store(image.data, image.mime_type, IMAGE_FOLDER)

            section = SectionRow(
                site=self.site.key,
                section_name=body.section_name,
                section_code=code,
                section_slug=section_slug,
                section_description=body.section_description,
                is_section_important=body.is_section_important,
                expires_at=as_utc(body.expires_at),
                tags=list(dict.fromkeys(body.tags)),
                category=body.category,
                subcategory=list(dict.fromkeys(body.subcategory)),
                display_order=body.display_order,
                meta_title=body.meta_title or meta_title_for(body.section_name),
                meta_description=body.meta_description
                or meta_description_for(body.section_description, body.section_name),
                section_image_url=image_url,
                section_color=body.section_color,
                section_background_color=body.section_background_color,
                articles_count=0,
                featured_articles=[],
            )
            section.refresh_active(self._clock())
            session.add(section)
            await self._commit(session, uploaded=image_url if image is not None else None)

        await self._invalidate()
        logger.info("Created section %s (%s)", section.section_slug, section.section_code)
        return section_to_dict(section)

    async def update(self, section_id: str, body: SectionUpdate, image: Upload | None = None) -> dict:
        validate_id(section_id, "section")
        if image is not None:
            validate_image(image)
        fields = body.model_fields_set

        async with self._store.session() as session:
            section = await self._get(session, section_id)
            old_slug = section.section_slug

            new_slug = section.section_slug
            if body.section_slug:
                new_slug = slugs.generate(body.section_slug)
            elif body.section_name and body.section_name != section.section_name:
                new_slug = slugs.generate(body.section_name)
            new_code = body.section_code.upper() if body.section_code else section.section_code
            if new_slug != section.section_slug or new_code != section.section_code:
                await self._ensure_unique(session, new_slug, new_code, exclude_id=section.id)

            if body.section_name:
                section.section_name = body.section_name
            section.section_slug = new_slug
            section.section_code = new_code

            for name in (
                "section_description",
                "is_section_important",
                "category",
                "display_order",
                "meta_title",
                "meta_description",
                "section_image_url",
                "section_color",
                "section_background_color",
            ):
                value = getattr(body, name)
                if name in fields and value is not None:
                    setattr(section, name, value)
            if body.tags is not None:
                section.tags = list(dict.fromkeys(body.tags))
            if body.subcategory is not None:
                section.subcategory = list(dict.fromkeys(body.subcategory))
            if "expires_at" in fields:
                section.expires_at = as_utc(body.expires_at)
                section.refresh_active(self._clock())
            section.updated_by = "Admin"

            old_image = None
            uploaded = None
            if image is not None:
                old_image = section.section_image_url
                uploaded = await self._blobs.store(image.data, image.mime_type, IMAGE_FOLDER)
                section.section_image_url = uploaded

            renamed = await self._propagate(session, section)
            await self._commit(session, uploaded=uploaded)

        if old_image:
            await self._blobs.delete(old_image)
        await self._invalidate(old_slug, section.section_slug, articles=renamed > 0)
        return section_to_dict(section)

    async def delete(self, section_id: str) -> int:
        """Delete a section and detach its articles. Returns how many were detached."""
        validate_id(section_id, "section")
        async with self._store.session() as session:
            section = await self._get(session, section_id)
            result = await session.execute(
                update(ArticleRow)
                .where(ArticleRow.site == self.site.key, ArticleRow.section_id == section.id)
                .values(
                    section_id=None,
                    section_name=None,
                    section_code=None,
                    section_slug=None,
                    has_section=False,
                )
                .execution_options(synchronize_session=False)
            )
            detached = result.rowcount or 0
            await session.delete(section)
            await session.commit()
        if section.section_image_url:
            await self._blobs.delete(section.section_image_url)
        await self._invalidate(section.section_slug, articles=True)
        logger.info("Deleted section %s; detached %d articles", section.section_slug, detached)
        return detached

    # ── Reads ──

    async def get(self, by: str, value: str) -> tuple[dict, bool]:
        """Look a section up by ``id``, ``slug`` or ``code``."""
        if by not in LOOKUPS:
            raise ValidationFailed(f"Invalid lookup. Valid lookups are: {', '.join(LOOKUPS)}")
        if by == "id":
            validate_id(value, "section")
        if by == "code":
            value = value.upper()

        async def load() -> dict | None:
            async with self._store.session() as session:
                section = await self._find(session, by, value)
                if section is None:
                    return None
                if await self._counts.correct(session, section):
                    await session.commit()
                    await self._cache.invalidate(
                        self.keys.pattern("sections"), self.keys.pattern("section")
                    )
                return section_to_dict(section)

        data, hit = await cached(self._cache, self.keys.section(by, value), TTL_ITEM, load)
        if data is None:
            raise NotFound("Section not found")
        return data, hit

    async def list(
        self, page: int = 1, limit: int = 20, filters: SectionFilters | None = None
    ) -> tuple[dict, bool]:
        filters = filters or SectionFilters()
        key = self.keys.sections("all", page, limit, *astuple(filters))
        return await cached(
            self._cache, key, TTL_LISTING, lambda: self._page(self._filtered(filters), page, limit)
        )

    async def important(self, limit: int = 10) -> tuple[list[dict], bool]:
        stmt = self._base().where(
            SectionRow.is_active.is_(True), SectionRow.is_section_important.is_(True)
        ).limit(limit)

        async def load() -> list[dict]:
            async with self._store.session() as session:
                rows = (await session.execute(stmt)).scalars().all()
            return [section_to_dict(s) for s in rows]

        return await cached(self._cache, self.keys.sections("important", limit), TTL_LISTING, load)

    async def expiring(self, days: int = 7) -> list[dict]:
        """Active sections whose expiry falls within the next ``days``."""
        if days < 1:
            raise ValidationFailed("days must be a positive integer")
        now = self._clock()
        stmt = (
            select(SectionRow)
            .where(
                SectionRow.site == self.site.key,
                SectionRow.is_active.is_(True),
                SectionRow.expires_at.is_not(None),
                SectionRow.expires_at > now,
                SectionRow.expires_at <= now + timedelta(days=days),
            )
            .order_by(SectionRow.expires_at)
        )
        async with self._store.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [section_to_dict(s) for s in rows]

    async def featured(self, section_id: str) -> list[dict]:
        """The section's featured articles, most recently featured first."""
        validate_id(section_id, "section")
        await self._reconciler.reconcile(self.site.key)
        async with self._store.session() as session:
            section = await self._get(session, section_id)
            ids = list(section.featured_articles or [])
            if not ids:
                return []
            rows = (
                await session.execute(select(ArticleRow).where(ArticleRow.id.in_(ids)))
            ).scalars().all()
        by_id = {a.id: a for a in rows}
        return [article_to_dict(by_id[i]) for i in ids if i in by_id]

    # ── Featured articles ──

    async def add_featured(self, section_id: str, article_id: str) -> dict:
        validate_id(section_id, "section")
        validate_id(article_id)
        async with self._store.session() as session:
            section = await self._get(session, section_id)
            article = await session.get(ArticleRow, article_id)
            if article is None or article.site != self.site.key:
                raise NotFound("Article not found")
            if article.section_id != section.id:
                raise ValidationFailed("Article does not belong to this section")
            featured = [a for a in section.featured_articles if a != article_id]
            section.featured_articles = [article_id, *featured][:MAX_FEATURED]
            await session.commit()
        await self._invalidate(section.section_slug)
        return section_to_dict(section)

    async def remove_featured(self, section_id: str, article_id: str) -> dict:
        validate_id(section_id, "section")
        async with self._store.session() as session:
            section = await self._get(session, section_id)
            if article_id not in section.featured_articles:
                raise NotFound("Article is not featured in this section")
            section.featured_articles = [a for a in section.featured_articles if a != article_id]
            await session.commit()
        await self._invalidate(section.section_slug)
        return section_to_dict(section)

    # ── Tags and toggles ──

    async def add_tags(self, section_id: str, tags: list[str]) -> dict:
        if not tags:
            raise ValidationFailed("At least one tag is required")

        def apply(section: SectionRow) -> None:
            section.tags = list(dict.fromkeys([*section.tags, *tags]))

        return await self._modify(section_id, apply)

    async def remove_tags(self, section_id: str, tags: list[str]) -> dict:
        if not tags:
            raise ValidationFailed("At least one tag is required")
        drop = set(tags)

        def apply(section: SectionRow) -> None:
            section.tags = [t for t in section.tags if t not in drop]

        return await self._modify(section_id, apply)

    async def toggle_important(self, section_id: str) -> dict:
        def apply(section: SectionRow) -> None:
            section.is_section_important = not section.is_section_important

        return await self._modify(section_id, apply)

    async def toggle_active(self, section_id: str) -> dict:
        """Flip ``is_active``. Reactivating an expired section clears its expiry."""
        now = self._clock()

        def apply(section: SectionRow) -> None:
            if section.is_active:
                section.is_active = False
            else:
                if section.expires_at is not None and section.expires_at <= now:
                    section.expires_at = None
                section.is_active = True

        return await self._modify(section_id, apply)

    # ── Expiration ──

    async def set_expiration(self, section_id: str, expires_at) -> dict:
        if expires_at is None:
            raise ValidationFailed("expires_at is required")
        expires_at = as_utc(expires_at)
        now = self._clock()
        if expires_at <= now:
            raise ValidationFailed("Expiration date must be in the future")

        def apply(section: SectionRow) -> None:
            section.expires_at = expires_at
            section.refresh_active(now)

        return await self._modify(section_id, apply)

    async def extend_expiration(self, section_id: str, days: int) -> dict:
        if days < 1:
            raise ValidationFailed("days must be a positive integer")
        now = self._clock()

        def apply(section: SectionRow) -> None:
            start = section.expires_at if section.expires_at and section.expires_at > now else now
            section.expires_at = start + timedelta(days=days)
            section.refresh_active(now)

        return await self._modify(section_id, apply)

    async def remove_expiration(self, section_id: str) -> dict:
        def apply(section: SectionRow) -> None:
            section.expires_at = None
            section.is_active = True

        return await self._modify(section_id, apply)

    async def deactivate_expired(self) -> int:
        now = self._clock()
        async with self._store.session() as session:
            result = await session.execute(
                update(SectionRow)
                .where(
                    SectionRow.site == self.site.key,
                    SectionRow.is_active.is_(True),
                    SectionRow.expires_at.is_not(None),
                    SectionRow.expires_at < now,
                )
                .values(is_active=False)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        count = result.rowcount or 0
        if count:
            await self._invalidate()
            logger.info("Deactivated %d expired sections on %s", count, self.site.key)
        return count

    async def sync_counts(self) -> dict[str, int]:
        return await self._counts.recount_all(self.site.key)

    async def recount(self, section_slug: str) -> int:
        count = await self._counts.recount(self.site.key, section_slug)
        if count is None:
            raise NotFound("Section not found")
        return count

    # ── Internals ──

    def _base(self) -> Select:
        return (
            select(SectionRow)
            .where(SectionRow.site == self.site.key)
            .order_by(SectionRow.display_order, SectionRow.created_at.desc(), SectionRow.id)
        )

    def _filtered(self, f: SectionFilters) -> Select:
        stmt = self._base()
        if f.is_active is not None:
            stmt = stmt.where(SectionRow.is_active.is_(f.is_active))
        if f.is_important is not None:
            stmt = stmt.where(SectionRow.is_section_important.is_(f.is_important))
        if f.category:
            stmt = stmt.where(SectionRow.category == f.category)
        if f.tag:
            # JSON list stored as text; match the quoted element
            stmt = stmt.where(cast(SectionRow.tags, Text).like(like_pattern(f'"{f.tag}"'), escape="\\"))
        if f.search:
            pattern = like_pattern(f.search)
            stmt = stmt.where(
                or_(
                    SectionRow.section_name.ilike(pattern, escape="\\"),
                    SectionRow.section_code.ilike(pattern, escape="\\"),
                    SectionRow.section_description.ilike(pattern, escape="\\"),
                )
            )
        return stmt

    async def _page(self, stmt: Select, page: int, limit: int) -> dict:
        async with self._store.session() as session:
            total = (
                await session.execute(
                    select(func.count()).select_from(stmt.order_by(None).subquery())
                )
            ).scalar_one()
            rows = (
                await session.execute(stmt.offset((page - 1) * limit).limit(limit))
            ).scalars().all()
        return page_payload([section_to_dict(s) for s in rows], total, page, limit, "sections")

    async def _get(self, session: AsyncSession, section_id: str) -> SectionRow:
        section = await session.get(SectionRow, section_id)
        if section is None or section.site != self.site.key:
            raise NotFound("Section not found")
        return section

    async def _find(self, session: AsyncSession, by: str, value: str) -> SectionRow | None:
        if by == "id":
            section = await session.get(SectionRow, value)
            return section if section is not None and section.site == self.site.key else None
        column = SectionRow.section_slug if by == "slug" else SectionRow.section_code
        result = await session.execute(
            select(SectionRow).where(SectionRow.site == self.site.key, column == value)
        )
        return result.scalar_one_or_none()

    async def _ensure_unique(
        self, session: AsyncSession, section_slug: str, code: str, exclude_id: str | None = None
    ) -> None:
        stmt = select(SectionRow.id).where(
            SectionRow.site == self.site.key,
            or_(SectionRow.section_slug == section_slug, SectionRow.section_code == code),
        )
        if exclude_id:
            stmt = stmt.where(SectionRow.id != exclude_id)
        if (await session.execute(stmt)).first() is not None:
            raise Conflict("Section with this name, slug or code already exists")

    async def _propagate(self, session: AsyncSession, section: SectionRow) -> int:
        """Copy the section's name/code/slug onto every linked article."""
        result = await session.execute(
            update(ArticleRow)
            .where(
                ArticleRow.site == self.site.key,
                ArticleRow.section_id == section.id,
                or_(
                    ArticleRow.section_name != section.section_name,
                    ArticleRow.section_code != section.section_code,
                    ArticleRow.section_slug != section.section_slug,
                ),
            )
            .values(
                section_name=section.section_name,
                section_code=section.section_code,
                section_slug=section.section_slug,
                has_section=True,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def _modify(self, section_id: str, apply) -> dict:
        validate_id(section_id, "section")
        async with self._store.session() as session:
            section = await self._get(session, section_id)
            apply(section)
            section.updated_by = "Admin"
            await session.commit()
        await self._invalidate(section.section_slug)
        return section_to_dict(section)

    async def _commit(self, session: AsyncSession, *, uploaded: str | None = None) -> None:
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            if uploaded:
                await self._blobs.delete(uploaded)
            raise Conflict("Section with this name, slug or code already exists") from None

    async def _invalidate(self, *section_slugs: str, articles: bool = False) -> None:
        patterns = self.keys.section_patterns()
        for section_slug in section_slugs:
            patterns.extend(self.keys.section_patterns(section_slug)[2:])
        if articles:
            patterns.extend(self.keys.article_patterns())
        await self._cache.invalidate(*patterns)
