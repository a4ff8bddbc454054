"""Database layer: content store, async session factory, and ORM models."""

from newsdesk.db.engine import ContentStore
from newsdesk.db.models import ArticleLabelRow, ArticleRow, Base, SectionRow, StoryRow, new_id

__all__ = [
    "ArticleLabelRow",
    "ArticleRow",
    "Base",
    "ContentStore",
    "SectionRow",
    "StoryRow",
    "new_id",
]
