"""Pydantic models for request payloads and embedded documents."""

from newsdesk.models.comments import Comment, Reply, VoteDirection
from newsdesk.models.content import (
    ArticleCreate,
    ArticleUpdate,
    ContentBlock,
    LiveContent,
    PlainContent,
)
from newsdesk.models.section import SectionCreate, SectionUpdate
from newsdesk.models.story import StoryCreate, StoryUpdate

__all__ = [
    "ArticleCreate",
    "ArticleUpdate",
    "Comment",
    "ContentBlock",
    "LiveContent",
    "PlainContent",
    "Reply",
    "SectionCreate",
    "SectionUpdate",
    "StoryCreate",
    "StoryUpdate",
    "VoteDirection",
]
