"""SQLAlchemy ORM models: document-shaped rows for every site."""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import TypeAdapter
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from newsdesk.clock import utcnow
from newsdesk.models.comments import Comment
from newsdesk.models.content import ArticleBody, LiveContent, PlainContent, body_text

JSONDoc = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    """24 hex characters, the id format the public API validates."""
    return uuid4().hex[:24]


class UTCDateTime(TypeDecorator):
    """Timezone-aware in Python on every backend, stored as UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


_BODY = TypeAdapter(ArticleBody)
_COMMENTS = TypeAdapter(list[Comment])


class Base(DeclarativeBase):
    pass


class SectionRow(Base):
    """A curated grouping of politics articles."""

    __tablename__ = "sections"

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=new_id)
    site: Mapped[str] = mapped_column(String(32), nullable=False, default="ghanapolitan")
    section_name: Mapped[str] = mapped_column(String(256), nullable=False)
    section_code: Mapped[str] = mapped_column(String(64), nullable=False)
    section_slug: Mapped[str] = mapped_column(String(256), nullable=False)
    section_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_section_important: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    tags: Mapped[list[str]] = mapped_column(JSONDoc, nullable=False, default=list)
    category: Mapped[str | None] = mapped_column(String(128), nullable=True)
    subcategory: Mapped[list[str]] = mapped_column(JSONDoc, nullable=False, default=list)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    meta_title: Mapped[str | None] = mapped_column(String(256), nullable=True)
    meta_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    section_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    section_color: Mapped[str] = mapped_column(String(16), nullable=False, default="#000000")
    section_background_color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False, default="Admin")
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Denormalized; corrected lazily on read and by the sync operation
    articles_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    featured_articles: Mapped[list[str]] = mapped_column(JSONDoc, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_sections_site_slug", "site", "section_slug", unique=True),
        Index("ix_sections_site_code", "site", "section_code", unique=True),
        Index("ix_sections_is_active", "is_active"),
        Index("ix_sections_expires_at", "expires_at"),
    )

    def refresh_active(self, now: datetime) -> None:
        """Active iff there is no expiry or it lies in the future."""
        self.is_active = self.expires_at is None or self.expires_at > now


class ArticleRow(Base):
    """An article on any site. Politics articles may link to a section."""

    __tablename__ = "articles"

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=new_id)
    site: Mapped[str] = mapped_column(String(32), nullable=False)
    slug: Mapped[str] = mapped_column(String(320), nullable=False)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # PlainContent | LiveContent document; see ``body``
    content: Mapped[dict] = mapped_column(JSONDoc, nullable=False, default=dict)
    content_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(128), nullable=False)
    label: Mapped[str] = mapped_column(String(128), nullable=False, default="")

    # Section linkage; only ever written through ``link_section``
    section_id: Mapped[str | None] = mapped_column(String(24), nullable=True)
    section_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    section_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    section_slug: Mapped[str | None] = mapped_column(String(256), nullable=True)
    has_section: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Status flags
    is_live: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    was_live: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_breaking: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_topstory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_headline: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    breaking_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    topstory_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    comments: Mapped[list[dict]] = mapped_column(JSONDoc, nullable=False, default=list)

    source_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    creator: Mapped[str] = mapped_column(String(128), nullable=False, default="Admin")
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta_title: Mapped[str | None] = mapped_column(String(256), nullable=True)
    meta_description: Mapped[str | None] = mapped_column(Text, nullable=True)

    published_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    labels: Mapped[list["ArticleLabelRow"]] = relationship(
        back_populates="article", cascade="all, delete-orphan", lazy="selectin"
    )

    __table_args__ = (
        Index("ix_articles_site_slug", "site", "slug", unique=True),
        Index("ix_articles_site_published", "site", "published_at"),
        Index("ix_articles_site_category", "site", "category"),
        Index("ix_articles_site_label", "site", "label"),
        Index("ix_articles_section_slug", "site", "section_slug", "has_section"),
        Index("ix_articles_breaking", "site", "is_breaking", "breaking_expires_at"),
        Index("ix_articles_topstory", "site", "is_topstory", "topstory_expires_at"),
        Index("ix_articles_headline", "site", "is_headline"),
    )

    # ── Body ──

    @property
    def body(self) -> PlainContent | LiveContent:
        return _BODY.validate_python(self.content or {"kind": "plain", "text": ""})

    @body.setter
    def body(self, value: PlainContent | LiveContent) -> None:
        self.content = value.model_dump(mode="json", by_alias=True)
        self.content_text = body_text(value)

    # ── Comments ──

    @property
    def comment_list(self) -> list[Comment]:
        return _COMMENTS.validate_python(self.comments or [])

    @comment_list.setter
    def comment_list(self, value: list[Comment]) -> None:
        # Reassign so the JSON column is flagged dirty
        self.comments = [c.to_doc() for c in value]

    # ── Labels ──

    @property
    def tags(self) -> list[str]:
        return [label.value for label in self.labels if label.kind == "tag"]

    @property
    def subcategory(self) -> list[str]:
        return [label.value for label in self.labels if label.kind == "subcategory"]

    def set_labels(self, kind: str, values: list[str]) -> None:
        kept = [label for label in self.labels if label.kind != kind]
        fresh = [ArticleLabelRow(kind=kind, value=v) for v in dict.fromkeys(values)]
        self.labels = kept + fresh

    # ── Section linkage ──

    def link_section(self, section: SectionRow | None) -> None:
        """Point the article at ``section`` (or detach it) and recompute ``has_section``."""
        if section is None:
            self.section_id = None
            self.section_name = None
            self.section_code = None
            self.section_slug = None
        else:
            self.section_id = section.id
            self.section_name = section.section_name
            self.section_code = section.section_code
            self.section_slug = section.section_slug
        self.has_section = bool(self.section_name and self.section_name.strip())


class ArticleLabelRow(Base):
    """One tag or subcategory value of an article."""

    __tablename__ = "article_labels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    article_id: Mapped[str] = mapped_column(
        String(24), ForeignKey("articles.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(16), nullable=False)  # 'tag' | 'subcategory'
    value: Mapped[str] = mapped_column(String(128), nullable=False)

    article: Mapped["ArticleRow"] = relationship(back_populates="labels")

    __table_args__ = (
        Index("ix_article_labels_article_id", "article_id"),
        Index("ix_article_labels_kind_value", "kind", "value"),
    )


class StoryRow(Base):
    """Features, opinions, graphics and charts: CRUD documents without status flags."""

    __tablename__ = "stories"

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=new_id)
    site: Mapped[str] = mapped_column(String(32), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    slug: Mapped[str] = mapped_column(String(320), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(128), nullable=False)
    subcategory: Mapped[list[str]] = mapped_column(JSONDoc, nullable=False, default=list)
    tags: Mapped[list[str]] = mapped_column(JSONDoc, nullable=False, default=list)
    data: Mapped[dict[str, Any] | None] = mapped_column(JSONDoc, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    creator: Mapped[str] = mapped_column(String(128), nullable=False, default="Admin")
    source_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    meta_title: Mapped[str | None] = mapped_column(String(256), nullable=True)
    meta_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    published_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_stories_site_kind_slug", "site", "kind", "slug", unique=True),
        Index("ix_stories_site_kind_published", "site", "kind", "published_at"),
    )
