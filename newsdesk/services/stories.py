"""Features, opinions, graphics and charts.

Plain documents: a slug, an optional image and a cache namespace per kind,
none of the status flags articles carry.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Select, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from newsdesk import slug as slugs
from newsdesk.cache import TTL_ITEM, TTL_LISTING, CacheKeys, CacheLayer, cached
from newsdesk.clock import Clock, as_utc, utcnow
from newsdesk.db.engine import ContentStore
from newsdesk.db.models import StoryRow
from newsdesk.errors import Conflict, NotFound, ValidationFailed
from newsdesk.models.content import meta_description_for, meta_title_for
from newsdesk.models.story import StoryCreate, StoryUpdate
from newsdesk.services.articles import like_pattern, page_payload, validate_id
from newsdesk.sites import Site
from newsdesk.storage.blobs import BlobStore, Upload, validate_image

logger = logging.getLogger(__name__)


def story_to_dict(s: StoryRow) -> dict[str, Any]:
    return {
        "id": s.id,
        "kind": s.kind,
        "slug": s.slug,
        "title": s.title,
        "description": s.description,
        "content": s.content,
        "category": s.category,
        "subcategory": list(s.subcategory or []),
        "tags": list(s.tags or []),
        "data": s.data,
        "image_url": s.image_url,
        "creator": s.creator,
        "source_name": s.source_name,
        "meta_title": s.meta_title,
        "meta_description": s.meta_description,
        "published_at": s.published_at.isoformat(),
        "created_at": s.created_at.isoformat(),
        "updated_at": s.updated_at.isoformat(),
    }


class StoryService:
    """CRUD for one story kind on one site."""

    def __init__(
        self,
        site: Site,
        kind: str,
        store: ContentStore,
        cache: CacheLayer,
        blobs: BlobStore,
        *,
        clock: Clock = utcnow,
    ) -> None:
        if kind not in site.story_kinds:
            raise ValueError(f"{site.name} does not publish {kind}s")
        self.site = site
        self.kind = kind
        self.keys = CacheKeys(site.key)
        self._store = store
        self._cache = cache
        self._blobs = blobs
        self._clock = clock

    @property
    def folder(self) -> str:
        return f"{self.kind}s"

    @property
    def label(self) -> str:
        return self.kind.capitalize()

    async def create(self, body: StoryCreate, image: Upload | None = None) -> dict:
        if image is not None:
            validate_image(image)
        slug = slugs.generate(body.slug or body.title)
        if not slug:
            raise ValidationFailed("Title must contain at least one letter or digit")

        async with self._store.session() as session:
            await self._ensure_slug_free(session, slug)
            image_url = body.image_url
            if image is not None:
                image_url = await self._blobs.store(image.data, image.mime_type, self.folder)
            story = StoryRow(
                site=self.site.key,
                kind=self.kind,
                slug=slug,
                title=body.title,
                description=body.description,
                content=body.content,
                category=body.category,
                subcategory=list(dict.fromkeys(body.subcategory)),
                tags=list(dict.fromkeys(body.tags)),
                data=body.data,
                image_url=image_url,
                creator=body.creator or "Admin",
                source_name=body.source_name or self.site.name,
                meta_title=body.meta_title or meta_title_for(body.title),
                meta_description=body.meta_description
                or meta_description_for(body.description, body.title),
                published_at=as_utc(body.published_at) or self._clock(),
            )
            session.add(story)
            await self._commit(session, uploaded=image_url if image is not None else None)

        await self._invalidate()
        logger.info("Created %s %s %s", self.site.key, self.kind, story.slug)
        return story_to_dict(story)

    async def update(self, story_id: str, body: StoryUpdate, image: Upload | None = None) -> dict:
        validate_id(story_id, self.kind)
        if image is not None:
            validate_image(image)
        fields = body.model_fields_set

        async with self._store.session() as session:
            story = await self._get(session, story_id)
            if body.title and body.title != story.title:
                story.title = body.title
                new_slug = slugs.generate(body.title)
                if new_slug != story.slug:
                    await self._ensure_slug_free(session, new_slug, exclude_id=story.id)
                    story.slug = new_slug
            for name in (
                "description",
                "content",
                "category",
                "creator",
                "source_name",
                "meta_title",
                "meta_description",
            ):
                value = getattr(body, name)
                if name in fields and value is not None:
                    setattr(story, name, value)
            if "published_at" in fields and body.published_at is not None:
                story.published_at = as_utc(body.published_at)
            if "image_url" in fields:
                story.image_url = body.image_url
            if "data" in fields:
                story.data = body.data
            if body.tags is not None:
                story.tags = list(dict.fromkeys(body.tags))
            if body.subcategory is not None:
                story.subcategory = list(dict.fromkeys(body.subcategory))

            old_image = None
            uploaded = None
            if image is not None:
                old_image = story.image_url
                uploaded = await self._blobs.store(image.data, image.mime_type, self.folder)
                story.image_url = uploaded
            await self._commit(session, uploaded=uploaded)

        if old_image:
            await self._blobs.delete(old_image)
        await self._invalidate()
        return story_to_dict(story)

    async def delete(self, story_id: str) -> None:
        validate_id(story_id, self.kind)
        async with self._store.session() as session:
            story = await self._get(session, story_id)
            await session.delete(story)
            await session.commit()
        if story.image_url:
            await self._blobs.delete(story.image_url)
        await self._invalidate()
        logger.info("Deleted %s %s %s", self.site.key, self.kind, story_id)

    async def get(self, by: str, value: str) -> tuple[dict, bool]:
        """Look a story up by ``id`` or ``slug``."""
        if by not in ("id", "slug"):
            raise ValidationFailed("Invalid lookup. Valid lookups are: id, slug")
        if by == "id":
            validate_id(value, self.kind)

        async def load() -> dict | None:
            async with self._store.session() as session:
                column = StoryRow.id if by == "id" else StoryRow.slug
                story = (
                    await session.execute(self._base().where(column == value))
                ).scalar_one_or_none()
            return story_to_dict(story) if story is not None else None

        data, hit = await cached(self._cache, self.keys.story(self.kind, by, value), TTL_ITEM, load)
        if data is None:
            raise NotFound(f"{self.label} not found")
        return data, hit

    async def list(self, page: int = 1, limit: int = 10, category: str | None = None) -> tuple[dict, bool]:
        stmt = self._base()
        if category:
            stmt = stmt.where(StoryRow.category == category)
        key = self.keys.stories(self.kind, "all", page, limit, category)
        return await cached(self._cache, key, TTL_LISTING, lambda: self._page(stmt, page, limit))

    async def search(self, q: str | None, page: int = 1, limit: int = 10) -> tuple[dict, bool]:
        q = (q or "").strip()
        if not q:
            raise ValidationFailed("Search query is required")
        pattern = like_pattern(q)
        stmt = self._base().where(
            or_(
                StoryRow.title.ilike(pattern, escape="\\"),
                StoryRow.description.ilike(pattern, escape="\\"),
                StoryRow.content.ilike(pattern, escape="\\"),
                StoryRow.category.ilike(pattern, escape="\\"),
            )
        )

        async def load() -> dict:
            return {"query": q, **await self._page(stmt, page, limit)}

        key = self.keys.stories(self.kind, "search", q.lower(), page, limit)
        return await cached(self._cache, key, TTL_LISTING, load)

    # ── Internals ──

    def _base(self) -> Select:
        return (
            select(StoryRow)
            .where(StoryRow.site == self.site.key, StoryRow.kind == self.kind)
            .order_by(StoryRow.published_at.desc(), StoryRow.id)
        )

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
        return page_payload([story_to_dict(s) for s in rows], total, page, limit, self.folder)

    async def _get(self, session: AsyncSession, story_id: str) -> StoryRow:
        story = await session.get(StoryRow, story_id)
        if story is None or story.site != self.site.key or story.kind != self.kind:
            raise NotFound(f"{self.label} not found")
        return story

    async def _ensure_slug_free(
        self, session: AsyncSession, slug: str, exclude_id: str | None = None
    ) -> None:
        stmt = select(StoryRow.id).where(
            StoryRow.site == self.site.key, StoryRow.kind == self.kind, StoryRow.slug == slug
        )
        if exclude_id:
            stmt = stmt.where(StoryRow.id != exclude_id)
        if (await session.execute(stmt)).first() is not None:
            raise Conflict("Slug must be unique")

    async def _commit(self, session: AsyncSession, *, uploaded: str | None = None) -> None:
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            if uploaded:
                await self._blobs.delete(uploaded)
            raise Conflict("Slug must be unique") from None

    async def _invalidate(self) -> None:
        await self._cache.invalidate(*self.keys.story_patterns(self.kind))
