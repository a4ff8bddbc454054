"""Article orchestration for one site.

On top of plain CRUD this owns the cross-cutting rules:

- at most one headline per site (promotion demotes the rest in the same
  transaction);
- breaking/top-story flags get an expiry when switched on, lose it when
  switched off, and are reconciled before any read that could expose them;
- live coverage is one-way: ``wasLive`` ends it and ``isLive`` never returns;
- moving between sections nudges both section counts;
- every write invalidates the site's article namespaces after it commits.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable
from dataclasses import astuple, dataclass
from datetime import timedelta
from typing import Any

from pydantic import ValidationError
from sqlalchemy import Select, exists, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from newsdesk import slug as slugs
from newsdesk.cache import (
    TTL_FOREVER,
    TTL_ITEM,
    TTL_LISTING,
    TTL_VOLATILE,
    CacheKeys,
    CacheLayer,
    cached,
)
from newsdesk.clock import Clock, as_utc, utcnow
from newsdesk.db.engine import ContentStore
from newsdesk.db.models import ArticleLabelRow, ArticleRow, SectionRow
from newsdesk.errors import Conflict, NotFound, ValidationFailed
from newsdesk.models.comments import (
    COMMENT_SORTS,
    Comment,
    CommentEdit,
    CommentIn,
    Reply,
    VoteDirection,
    sort_comments,
)
from newsdesk.models.content import (
    ArticleCreate,
    ArticleUpdate,
    ContentBlock,
    LiveContent,
    body_to_wire,
    meta_description_for,
    meta_title_for,
    resolve_body,
)
from newsdesk.services.expiry import ExpiryReconciler
from newsdesk.sites import Site
from newsdesk.storage.blobs import BlobStore, Upload, validate_image

logger = logging.getLogger(__name__)

ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")

# Canonical status vocabulary for /status/{status}
STATUS_FLAGS = {
    "live": ArticleRow.is_live,
    "breaking": ArticleRow.is_breaking,
    "topstory": ArticleRow.is_topstory,
    "headline": ArticleRow.is_headline,
}

IMAGE_FOLDER = "articles"


def _iso(dt) -> str | None:
    return dt.isoformat() if dt else None


def validate_id(article_id: str, what: str = "article") -> None:
    if not ID_PATTERN.match(article_id or ""):
        raise ValidationFailed(f"Invalid {what} ID format")


def article_to_dict(a: ArticleRow, *, include_comments: bool = False) -> dict[str, Any]:
    d: dict[str, Any] = {
        "id": a.id,
        "site": a.site,
        "slug": a.slug,
        "title": a.title,
        "description": a.description,
        "content": body_to_wire(a.body),
        "category": a.category,
        "label": a.label,
        "subcategory": a.subcategory,
        "tags": a.tags,
        "section_id": a.section_id,
        "section_name": a.section_name,
        "section_code": a.section_code,
        "section_slug": a.section_slug,
        "has_section": a.has_section,
        "isLive": a.is_live,
        "wasLive": a.was_live,
        "isBreaking": a.is_breaking,
        "isTopstory": a.is_topstory,
        "isHeadline": a.is_headline,
        "breakingExpiresAt": _iso(a.breaking_expires_at),
        "topstoryExpiresAt": _iso(a.topstory_expires_at),
        "source_name": a.source_name,
        "creator": a.creator,
        "image_url": a.image_url,
        "meta_title": a.meta_title,
        "meta_description": a.meta_description,
        "published_at": _iso(a.published_at),
        "created_at": _iso(a.created_at),
        "updated_at": _iso(a.updated_at),
        "commentsCount": len(a.comments or []),
    }
    if include_comments:
        d["comments"] = list(a.comments or [])
    return d


def page_payload(items: list[dict], total: int, page: int, limit: int, key: str = "articles") -> dict:
    return {
        "results": len(items),
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
        "currentPage": page,
        "data": {key: items},
    }


def like_pattern(q: str) -> str:
    escaped = q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@dataclass(frozen=True)
class ArticleFilters:
    """Listing filters; field order fixes the cache-key layout."""

    category: str | None = None
    subcategory: str | None = None
    section_id: str | None = None
    section_slug: str | None = None
    has_section: bool | None = None
    is_breaking: bool | None = None
    is_live: bool | None = None
    is_topstory: bool | None = None
    is_headline: bool | None = None
    label: str | None = None


class ArticleService:
    def __init__(
        self,
        site: Site,
        store: ContentStore,
        cache: CacheLayer,
        blobs: BlobStore,
        reconciler: ExpiryReconciler,
        *,
        clock: Clock = utcnow,
        breaking_window: timedelta = timedelta(minutes=30),
        topstory_window: timedelta = timedelta(hours=48),
    ) -> None:
        self.site = site
        self.keys = CacheKeys(site.key)
        self._store = store
        self._cache = cache
        self._blobs = blobs
        self._reconciler = reconciler
        self._clock = clock
        self._breaking_window = breaking_window
        self._topstory_window = topstory_window

    # ──────────────────────────────────────────────
    # Writes
    # ──────────────────────────────────────────────

    async def create(self, body: ArticleCreate, image: Upload | None = None) -> dict:
        if image is not None:
            validate_image(image)
        if body.section_id and not self.site.has_sections:
            raise ValidationFailed(f"{self.site.name} articles cannot belong to a section")

        slug = slugs.generate(body.slug) if body.slug else self._slug_for(body.title)
        if not slug:
            raise ValidationFailed("Title must contain at least one letter or digit")

        now = self._clock()
        async with self._store.session() as session:
            await self._ensure_slug_free(session, slug)
            section = await self._section(session, body.section_id) if body.section_id else None

            image_url = body.image_url
            if image is not None:
                image_url = await self._blobs.store(image.data, image.mime_type, IMAGE_FOLDER)

            published_at = as_utc(body.published_at) or now
            article = ArticleRow(
                site=self.site.key,
                slug=slug,
                title=body.title,
                description=body.description,
                category=body.category,
                label=body.label,
                source_name=body.source_name or self.site.name,
                creator=body.creator or "Admin",
                image_url=image_url,
                published_at=published_at,
                meta_title=body.meta_title or meta_title_for(body.title),
                meta_description=body.meta_description
                or meta_description_for(body.description, body.title),
                is_live=body.is_live,
                is_breaking=body.is_breaking,
                breaking_expires_at=now + self._breaking_window if body.is_breaking else None,
                is_topstory=body.is_topstory,
                topstory_expires_at=now + self._topstory_window if body.is_topstory else None,
                is_headline=body.is_headline,
                comments=[],
            )
            article.body = resolve_body(
                body.content,
                live=body.is_live,
                title=body.title,
                description=body.description,
                image_url=image_url,
                published_at=published_at,
            )
            article.set_labels("tag", body.tags)
            article.set_labels("subcategory", body.subcategory)

            if body.is_headline:
                await self._demote_headlines(session)
            affected = self._relink(article, None, section)

            session.add(article)
            await self._commit(session, uploaded=image_url if image is not None else None)

        await self._invalidate(affected)
        logger.info("Created %s article %s (%s)", self.site.key, article.id, article.slug)
        return article_to_dict(article, include_comments=self.site.has_comments)

    async def update(
        self, article_id: str, body: ArticleUpdate, image: Upload | None = None
    ) -> dict:
        validate_id(article_id)
        if image is not None:
            validate_image(image)
        await self._reconciler.reconcile(self.site.key)

        fields = body.model_fields_set
        now = self._clock()
        async with self._store.session() as session:
            article = await self._get(session, article_id)
            self._apply_live_transition(article, body, fields)

            if "title" in fields and body.title and body.title != article.title:
                article.title = body.title
                new_slug = self._slug_for(body.title)
                if new_slug != article.slug:
                    await self._ensure_slug_free(session, new_slug, exclude_id=article.id)
                    article.slug = new_slug

            for name in (
                "description",
                "category",
                "label",
                "source_name",
                "creator",
                "meta_title",
                "meta_description",
            ):
                value = getattr(body, name)
                if name in fields and value is not None:
                    setattr(article, name, value)
            if "published_at" in fields and body.published_at is not None:
                article.published_at = as_utc(body.published_at)
            if "image_url" in fields:
                article.image_url = body.image_url
            if body.tags is not None:
                article.set_labels("tag", body.tags)
            if body.subcategory is not None:
                article.set_labels("subcategory", body.subcategory)

            article.body = resolve_body(
                body.content if body.content is not None else article.body,
                live=article.is_live,
                title=article.title,
                description=article.description,
                image_url=article.image_url,
                published_at=article.published_at,
            )

            if body.is_breaking is not None:
                self._set_breaking(article, body.is_breaking, now)
            if body.is_topstory is not None:
                self._set_topstory(article, body.is_topstory, now)
            if body.is_headline is not None:
                if body.is_headline and not article.is_headline:
                    await self._demote_headlines(session, keep_id=article.id)
                article.is_headline = body.is_headline

            affected: list[str] = []
            if "section_id" in fields and (body.section_id or None) != article.section_id:
                if body.section_id and not self.site.has_sections:
                    raise ValidationFailed(f"{self.site.name} articles cannot belong to a section")
                new_section = await self._section(session, body.section_id) if body.section_id else None
                old_section = await self._linked_section(session, article)
                affected = self._relink(article, old_section, new_section)

            old_image = None
            uploaded = None
            if image is not None:
                old_image = article.image_url
                uploaded = await self._blobs.store(image.data, image.mime_type, IMAGE_FOLDER)
                article.image_url = uploaded

            await self._commit(session, uploaded=uploaded)

        if old_image:
            await self._blobs.delete(old_image)
        await self._invalidate(affected)
        return article_to_dict(article, include_comments=self.site.has_comments)

    async def delete(self, article_id: str) -> None:
        validate_id(article_id)
        async with self._store.session() as session:
            article = await self._get(session, article_id)
            old_section = await self._linked_section(session, article)
            affected = self._relink(article, old_section, None)
            await session.delete(article)
            await session.commit()
        if article.image_url:
            await self._blobs.delete(article.image_url)
        await self._invalidate(affected)
        logger.info("Deleted %s article %s", self.site.key, article_id)

    async def assign_section(self, article_id: str, section_id: str | None) -> dict:
        if not self.site.has_sections:
            raise NotFound(f"{self.site.name} has no sections")
        validate_id(article_id)
        if not section_id:
            raise ValidationFailed("Section ID is required")
        async with self._store.session() as session:
            article = await self._get(session, article_id)
            section = await self._section(session, section_id)
            old_section = await self._linked_section(session, article)
            affected = self._relink(article, old_section, section)
            await session.commit()
        await self._invalidate(affected)
        return article_to_dict(article)

    async def remove_section(self, article_id: str) -> dict:
        if not self.site.has_sections:
            raise NotFound(f"{self.site.name} has no sections")
        validate_id(article_id)
        async with self._store.session() as session:
            article = await self._get(session, article_id)
            if not article.section_id:
                raise ValidationFailed("Article is not assigned to any section")
            old_section = await self._linked_section(session, article)
            affected = self._relink(article, old_section, None)
            await session.commit()
        await self._invalidate(affected)
        return article_to_dict(article)

    async def add_live_update(self, article_id: str, block: ContentBlock) -> dict:
        """Append one entry to a live article's coverage."""
        validate_id(article_id)
        async with self._store.session() as session:
            article = await self._get(session, article_id)
            if not article.is_live:
                raise ValidationFailed("Only live articles accept live updates")
            current = article.body
            blocks = current.blocks if isinstance(current, LiveContent) else []
            article.body = LiveContent(blocks=[*blocks, block])
            await session.commit()
        await self._invalidate()
        return article_to_dict(article)

    # ──────────────────────────────────────────────
    # Reads
    # ──────────────────────────────────────────────

    async def get_by_id(self, article_id: str) -> tuple[dict, bool]:
        validate_id(article_id)
        await self._reconciler.reconcile(self.site.key)

        async def load() -> dict | None:
            async with self._store.session() as session:
                article = await session.get(ArticleRow, article_id)
                if article is None or article.site != self.site.key:
                    return None
                return article_to_dict(article, include_comments=self.site.has_comments)

        data, hit = await cached(self._cache, self.keys.article_id(article_id), TTL_ITEM, load)
        if data is None:
            raise NotFound("Article not found")
        return data, hit

    async def get_by_slug(self, slug: str) -> tuple[dict, bool]:
        await self._reconciler.reconcile(self.site.key)

        async def load() -> dict | None:
            async with self._store.session() as session:
                article = await self._by_slug(session, slug)
                if article is None:
                    return None
                d = article_to_dict(article, include_comments=self.site.has_comments)
                body = article.body
                if isinstance(body, LiveContent):
                    d["keyEvents"] = [
                        b.model_dump(mode="json", by_alias=True) for b in body.blocks if b.is_key
                    ]
                return d

        data, hit = await cached(self._cache, self.keys.article_slug(slug), TTL_ITEM, load)
        if data is None:
            raise NotFound("Article not found")
        return data, hit

    async def list(
        self, page: int = 1, limit: int = 10, filters: ArticleFilters | None = None
    ) -> tuple[dict, bool]:
        filters = filters or ArticleFilters()
        await self._reconciler.reconcile(self.site.key)
        key = self.keys.articles("all", page, limit, *astuple(filters))
        return await cached(
            self._cache, key, TTL_LISTING,
            lambda: self._page(self._filtered(filters), page, limit),
        )

    async def by_section(self, section_slug: str, page: int = 1, limit: int = 10) -> tuple[dict, bool]:
        if not self.site.has_sections:
            raise NotFound(f"{self.site.name} has no sections")
        await self._reconciler.reconcile(self.site.key)
        key = self.keys.articles("section", section_slug, page, limit)
        stmt = self._base().where(
            ArticleRow.has_section.is_(True), ArticleRow.section_slug == section_slug
        )
        return await cached(self._cache, key, TTL_LISTING, lambda: self._page(stmt, page, limit))

    async def headline(self) -> tuple[dict, bool]:
        await self._reconciler.reconcile(self.site.key)

        async def load() -> dict | None:
            async with self._store.session() as session:
                current = (
                    await session.execute(
                        self._base().where(ArticleRow.is_headline.is_(True)).limit(1)
                    )
                ).scalars().first()
                if current is None:
                    return None
                similar: list[ArticleRow] = []
                if current.tags:
                    similar = list(
                        (
                            await session.execute(
                                self._base()
                                .where(
                                    ArticleRow.id != current.id,
                                    ArticleRow.is_headline.is_(False),
                                    self._has_any_tag(current.tags),
                                )
                                .limit(3)
                            )
                        ).scalars().all()
                    )
                return {
                    "headline": article_to_dict(current),
                    "similarArticles": [article_to_dict(a) for a in similar],
                }

        data, hit = await cached(self._cache, self.keys.headline(), TTL_FOREVER, load)
        if data is None:
            raise NotFound("No headline article found")
        return data, hit

    async def breaking(self, limit: int = 5) -> tuple[list[dict], bool]:
        await self._reconciler.reconcile(self.site.key)
        stmt = self._base().where(ArticleRow.is_breaking.is_(True)).limit(limit)
        return await cached(
            self._cache, self.keys.breaking(limit), TTL_VOLATILE, lambda: self._all(stmt)
        )

    async def top_stories(self, limit: int = 10) -> tuple[list[dict], bool]:
        await self._reconciler.reconcile(self.site.key)
        stmt = self._base().where(ArticleRow.is_topstory.is_(True)).limit(limit)
        return await cached(
            self._cache, self.keys.topstories(limit), TTL_LISTING, lambda: self._all(stmt)
        )

    async def live(self, page: int = 1, limit: int = 10) -> tuple[dict, bool]:
        await self._reconciler.reconcile(self.site.key)
        stmt = self._base().where(ArticleRow.is_live.is_(True))
        return await cached(
            self._cache, self.keys.articles("live", page, limit), TTL_VOLATILE,
            lambda: self._page(stmt, page, limit),
        )

    async def by_status(
        self,
        status: str,
        page: int = 1,
        limit: int = 10,
        *,
        category: str | None = None,
        subcategory: str | None = None,
    ) -> tuple[dict, bool]:
        status = status.lower()
        flag = STATUS_FLAGS.get(status)
        if flag is None:
            raise ValidationFailed(
                f"Invalid status. Valid statuses are: {', '.join(STATUS_FLAGS)}"
            )
        await self._reconciler.reconcile(self.site.key)

        stmt = self._filtered(ArticleFilters(category=category, subcategory=subcategory))
        stmt = stmt.where(flag.is_(True))

        async def load() -> dict:
            payload = await self._page(stmt, page, limit)
            return {"statusType": status, **payload}

        ttl = TTL_VOLATILE if status in ("breaking", "live") else TTL_LISTING
        key = self.keys.articles("status", status, page, limit, category, subcategory)
        return await cached(self._cache, key, ttl, load)

    async def search(self, q: str | None, page: int = 1, limit: int = 10) -> tuple[dict, bool]:
        q = (q or "").strip()
        if not q:
            raise ValidationFailed("Search query is required")
        await self._reconciler.reconcile(self.site.key)

        pattern = like_pattern(q)
        tag_match = exists().where(
            ArticleLabelRow.article_id == ArticleRow.id,
            ArticleLabelRow.kind == "tag",
            ArticleLabelRow.value.ilike(pattern, escape="\\"),
        )
        stmt = self._base().where(
            or_(
                ArticleRow.title.ilike(pattern, escape="\\"),
                ArticleRow.description.ilike(pattern, escape="\\"),
                ArticleRow.content_text.ilike(pattern, escape="\\"),
                ArticleRow.category.ilike(pattern, escape="\\"),
                ArticleRow.label.ilike(pattern, escape="\\"),
                ArticleRow.section_name.ilike(pattern, escape="\\"),
                tag_match,
            )
        )

        async def load() -> dict:
            return {"query": q, **await self._page(stmt, page, limit)}

        key = self.keys.articles("search", q.lower(), page, limit)
        return await cached(self._cache, key, TTL_LISTING, load)

    async def similar(self, slug: str, page: int = 1, limit: int = 5) -> tuple[dict, bool]:
        await self._reconciler.reconcile(self.site.key)

        async def load() -> dict:
            async with self._store.session() as session:
                article = await self._by_slug(session, slug)
            if article is None:
                raise NotFound("Article not found")
            if not article.tags:
                return page_payload([], 0, page, limit)
            stmt = self._base().where(
                ArticleRow.id != article.id, self._has_any_tag(article.tags)
            )
            return await self._page(stmt, page, limit)

        key = self.keys.articles("similar", slug, page, limit)
        return await cached(self._cache, key, TTL_ITEM, load)

    async def by_label(self, label: str, page: int = 1, limit: int = 10) -> tuple[dict, bool]:
        await self._reconciler.reconcile(self.site.key)
        stmt = self._base().where(ArticleRow.label == label)

        async def load() -> dict:
            return {"label": label, **await self._page(stmt, page, limit)}

        key = self.keys.articles("label", label, page, limit)
        return await cached(self._cache, key, TTL_LISTING, load)

    async def recent(self, limit: int = 10, *, hours: int = 24) -> tuple[list[dict], bool]:
        """Articles published within the last ``hours``, newest first."""
        await self._reconciler.reconcile(self.site.key)
        since = self._clock() - timedelta(hours=hours)
        stmt = self._base().where(ArticleRow.published_at >= since).limit(limit)
        return await cached(
            self._cache, self.keys.articles("recent", limit), TTL_LISTING, lambda: self._all(stmt)
        )

    async def featured_content(self, limit: int = 6) -> tuple[list[dict], bool]:
        """The current headline followed by the latest ``limit - 1`` other articles."""
        await self._reconciler.reconcile(self.site.key)

        async def load() -> list[dict]:
            async with self._store.session() as session:
                headline = (
                    await session.execute(
                        self._base().where(ArticleRow.is_headline.is_(True)).limit(1)
                    )
                ).scalars().first()
                rest = (
                    await session.execute(
                        self._base().where(ArticleRow.is_headline.is_(False)).limit(max(limit - 1, 0))
                    )
                ).scalars().all()
            items = ([headline] if headline is not None else []) + list(rest)
            return [article_to_dict(a) for a in items[:limit]]

        return await cached(self._cache, self.keys.articles("featured", limit), TTL_LISTING, load)

    # ──────────────────────────────────────────────
    # Comments
    # ──────────────────────────────────────────────

    async def comments(
        self, slug: str, sort: str = "newest", page: int = 1, limit: int = 20
    ) -> tuple[dict, bool]:
        self._require_comments()
        if sort not in COMMENT_SORTS:
            raise ValidationFailed(f"Invalid sort. Valid sorts are: {', '.join(COMMENT_SORTS)}")

        async def load() -> dict:
            async with self._store.session() as session:
                article = await self._by_slug(session, slug)
            if article is None:
                raise NotFound("Article not found")
            ordered = sort_comments(article.comment_list, sort)
            window = ordered[(page - 1) * limit : page * limit]
            payload = page_payload([c.to_doc() for c in window], len(ordered), page, limit, "comments")
            return {"slug": slug, "sort": sort, **payload}

        return await cached(
            self._cache, self.keys.comments(slug, sort, page, limit), TTL_LISTING, load
        )

    async def add_comment(self, slug: str, body: CommentIn) -> dict:
        def mutate(comments: list[Comment]) -> dict:
            comment = _build(Comment, username=body.username, content=body.content)
            comments.append(comment)
            return comment.to_doc()

        return await self._mutate_comments(slug, mutate, creating=True)

    async def add_reply(self, slug: str, comment_id: str, body: CommentIn) -> dict:
        def mutate(comments: list[Comment]) -> dict:
            comment = _find_comment(comments, comment_id)
            reply = _build(Reply, username=body.username, content=body.content)
            comment.replies.append(reply)
            return reply.to_doc()

        return await self._mutate_comments(slug, mutate, creating=True)

    async def edit_comment(self, slug: str, comment_id: str, body: CommentEdit) -> dict:
        now = self._clock()

        def mutate(comments: list[Comment]) -> dict:
            comment = _find_comment(comments, comment_id)
            comment.edit(body.content, now)
            return comment.to_doc()

        return await self._mutate_comments(slug, mutate)

    async def edit_reply(self, slug: str, comment_id: str, reply_id: str, body: CommentEdit) -> dict:
        if len(body.content) > 500:
            raise ValidationFailed("Reply content must be at most 500 characters")
        now = self._clock()

        def mutate(comments: list[Comment]) -> dict:
            reply = _find_reply(_find_comment(comments, comment_id), reply_id)
            reply.edit(body.content, now)
            return reply.to_doc()

        return await self._mutate_comments(slug, mutate)

    async def delete_comment(self, slug: str, comment_id: str) -> None:
        def mutate(comments: list[Comment]) -> None:
            comments.remove(_find_comment(comments, comment_id))

        await self._mutate_comments(slug, mutate)

    async def delete_reply(self, slug: str, comment_id: str, reply_id: str) -> None:
        def mutate(comments: list[Comment]) -> None:
            comment = _find_comment(comments, comment_id)
            comment.replies.remove(_find_reply(comment, reply_id))

        await self._mutate_comments(slug, mutate)

    async def vote(
        self,
        slug: str,
        comment_id: str,
        voter: str,
        direction: VoteDirection,
        reply_id: str | None = None,
    ) -> dict:
        """Toggle ``voter``'s vote on a comment (or on one of its replies)."""
        if not voter:
            raise ValidationFailed("Voter identity is required")

        def mutate(comments: list[Comment]) -> dict:
            target = _find_comment(comments, comment_id)
            if reply_id is not None:
                target = _find_reply(target, reply_id)
            target.vote(voter, direction)
            return target.to_doc()

        return await self._mutate_comments(slug, mutate)

    # ──────────────────────────────────────────────
    # Internals
    # ──────────────────────────────────────────────

    def _slug_for(self, title: str) -> str:
        if self.site.suffix_slugs:
            return slugs.generate_suffixed(title, self._clock())
        return slugs.generate(title)

    def _base(self) -> Select:
        return (
            select(ArticleRow)
            .where(ArticleRow.site == self.site.key)
            .order_by(ArticleRow.published_at.desc(), ArticleRow.id)
        )

    def _has_any_tag(self, tags: list[str]):
        return exists().where(
            ArticleLabelRow.article_id == ArticleRow.id,
            ArticleLabelRow.kind == "tag",
            ArticleLabelRow.value.in_(tags),
        )

    def _filtered(self, f: ArticleFilters) -> Select:
        stmt = self._base()
        if f.category:
            stmt = stmt.where(ArticleRow.category == f.category)
        if f.label:
            stmt = stmt.where(ArticleRow.label == f.label)
        if f.subcategory:
            stmt = stmt.where(
                exists().where(
                    ArticleLabelRow.article_id == ArticleRow.id,
                    ArticleLabelRow.kind == "subcategory",
                    ArticleLabelRow.value == f.subcategory,
                )
            )
        if f.section_id:
            stmt = stmt.where(ArticleRow.section_id == f.section_id)
        if f.section_slug:
            stmt = stmt.where(ArticleRow.section_slug == f.section_slug)
        for column, wanted in (
            (ArticleRow.has_section, f.has_section),
            (ArticleRow.is_breaking, f.is_breaking),
            (ArticleRow.is_live, f.is_live),
            (ArticleRow.is_topstory, f.is_topstory),
            (ArticleRow.is_headline, f.is_headline),
        ):
            if wanted is not None:
                stmt = stmt.where(column.is_(wanted))
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
        return page_payload([article_to_dict(a) for a in rows], total, page, limit)

    async def _all(self, stmt: Select) -> list[dict]:
        async with self._store.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [article_to_dict(a) for a in rows]

    async def _get(self, session: AsyncSession, article_id: str) -> ArticleRow:
        article = await session.get(ArticleRow, article_id)
        if article is None or article.site != self.site.key:
            raise NotFound("Article not found")
        return article

    async def _by_slug(self, session: AsyncSession, slug: str) -> ArticleRow | None:
        result = await session.execute(
            select(ArticleRow).where(ArticleRow.site == self.site.key, ArticleRow.slug == slug)
        )
        return result.scalar_one_or_none()

    async def _ensure_slug_free(
        self, session: AsyncSession, slug: str, exclude_id: str | None = None
    ) -> None:
        stmt = select(ArticleRow.id).where(ArticleRow.site == self.site.key, ArticleRow.slug == slug)
        if exclude_id:
            stmt = stmt.where(ArticleRow.id != exclude_id)
        if (await session.execute(stmt)).first() is not None:
            raise Conflict("Slug must be unique")

    async def _section(self, session: AsyncSession, section_id: str) -> SectionRow:
        section = await session.get(SectionRow, section_id)
        if section is None or section.site != self.site.key:
            raise NotFound("Section not found")
        return section

    async def _linked_section(self, session: AsyncSession, article: ArticleRow) -> SectionRow | None:
        if not article.section_id:
            return None
        return await session.get(SectionRow, article.section_id)

    @staticmethod
    def _relink(
        article: ArticleRow, old: SectionRow | None, new: SectionRow | None
    ) -> list[str]:
        """Move ``article`` from ``old`` to ``new`` and nudge both counts.

        Returns the section slugs whose cache namespaces are now stale.
        """
        previous_slug = article.section_slug
        if old is not None and (new is None or old.id != new.id):
            old.articles_count = max(0, old.articles_count - 1)
            if article.id in (old.featured_articles or []):
                old.featured_articles = [a for a in old.featured_articles if a != article.id]
        if new is not None and (old is None or old.id != new.id):
            new.articles_count += 1
        article.link_section(new)
        return [s for s in {previous_slug, article.section_slug} if s]

    def _apply_live_transition(
        self, article: ArticleRow, body: ArticleUpdate, fields: set[str]
    ) -> None:
        if "was_live" in fields and body.was_live is not None:
            if not body.was_live and article.was_live:
                raise ValidationFailed("wasLive cannot be reverted")
            if body.was_live and not article.was_live:
                article.was_live = True
                article.is_live = False
                return
        if "is_live" in fields and body.is_live is not None and body.is_live != article.is_live:
            if body.is_live:
                if article.was_live:
                    raise ValidationFailed("An article that has been live cannot go live again")
                article.is_live = True
                article.comments = []
            else:
                raise ValidationFailed("End live coverage by setting wasLive instead of isLive=false")

    def _set_breaking(self, article: ArticleRow, on: bool, now) -> None:
        if on and not article.is_breaking:
            article.breaking_expires_at = now + self._breaking_window
        elif not on:
            article.breaking_expires_at = None
        article.is_breaking = on

    def _set_topstory(self, article: ArticleRow, on: bool, now) -> None:
        if on and not article.is_topstory:
            article.topstory_expires_at = now + self._topstory_window
        elif not on:
            article.topstory_expires_at = None
        article.is_topstory = on

    async def _demote_headlines(self, session: AsyncSession, keep_id: str | None = None) -> None:
        stmt = update(ArticleRow).where(
            ArticleRow.site == self.site.key, ArticleRow.is_headline.is_(True)
        )
        if keep_id:
            stmt = stmt.where(ArticleRow.id != keep_id)
        result = await session.execute(stmt.values(is_headline=False))
        if result.rowcount:
            logger.info("Demoted %d previous headline(s) on %s", result.rowcount, self.site.key)

    async def _commit(self, session: AsyncSession, *, uploaded: str | None = None) -> None:
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            if uploaded:
                await self._blobs.delete(uploaded)
            raise Conflict("Slug must be unique") from None

    async def _invalidate(self, section_slugs: list[str] | None = None) -> None:
        patterns = self.keys.article_patterns()
        for section_slug in section_slugs or []:
            patterns.extend(self.keys.section_patterns(section_slug))
        await self._cache.invalidate(*patterns)

    def _require_comments(self) -> None:
        if not self.site.has_comments:
            raise NotFound(f"Comments are not available on {self.site.name}")

    async def _mutate_comments(
        self, slug: str, mutate: Callable[[list[Comment]], Any], *, creating: bool = False
    ) -> Any:
        self._require_comments()
        async with self._store.session() as session:
            article = await self._by_slug(session, slug)
            if article is None:
                raise NotFound("Article not found")
            if creating and article.is_live:
                raise ValidationFailed("Live articles cannot have comments")
            comments = article.comment_list
            result = mutate(comments)
            article.comment_list = comments
            await session.commit()
        await self._invalidate()
        return result


def _build(model: type[Comment] | type[Reply], **values: Any) -> Any:
    try:
        return model(**values)
    except ValidationError as exc:
        raise ValidationFailed(
            "Invalid comment",
            errors=[{"field": ".".join(map(str, e["loc"])), "message": e["msg"]} for e in exc.errors()],
        ) from None


def _find_comment(comments: list[Comment], comment_id: str) -> Comment:
    comment = next((c for c in comments if c.id == comment_id), None)
    if comment is None:
        raise NotFound("Comment not found")
    return comment


def _find_reply(comment: Comment, reply_id: str) -> Reply:
    reply = comment.find_reply(reply_id)
    if reply is None:
        raise NotFound("Reply not found")
    return reply
