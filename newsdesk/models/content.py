"""Article payloads and the article body variant type."""

import re
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from newsdesk.clock import utcnow


class ContentBlock(BaseModel):
    """One timestamped entry of a live article."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    content_title: str = Field(min_length=1)
    content_description: str = Field(min_length=1)
    content_detail: str = Field(min_length=1)
    content_image_url: str | None = None
    content_published_at: datetime = Field(default_factory=utcnow)
    is_key: bool = Field(False, alias="isKey")


class PlainContent(BaseModel):
    kind: Literal["plain"] = "plain"
    text: str = ""


class LiveContent(BaseModel):
    kind: Literal["live"] = "live"
    blocks: list[ContentBlock] = Field(default_factory=list)


ArticleBody = Annotated[PlainContent | LiveContent, Field(discriminator="kind")]


def split_csv(value: Any) -> Any:
    """Accept ``"a, b"`` as well as ``["a", "b"]`` (multipart forms send strings)."""
    if value is None:
        return value
    if isinstance(value, str):
        value = value.split(",")
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


class _ArticleFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")

    @field_validator("tags", "subcategory", mode="before", check_fields=False)
    @classmethod
    def _labels(cls, v: Any) -> Any:
        return split_csv(v)


class ArticleCreate(_ArticleFields):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    content: str | list[ContentBlock]
    category: str = Field(min_length=1)
    subcategory: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    label: str = ""

    section_id: str | None = None

    is_live: bool = Field(False, alias="isLive")
    is_breaking: bool = Field(False, alias="isBreaking")
    is_topstory: bool = Field(False, alias="isTopstory")
    is_headline: bool = Field(False, alias="isHeadline")

    slug: str | None = None
    source_name: str | None = None
    creator: str | None = None
    image_url: str | None = None
    published_at: datetime | None = None
    meta_title: str | None = None
    meta_description: str | None = None


class ArticleUpdate(_ArticleFields):
    """Partial update. Only fields present in ``model_fields_set`` apply."""

    title: str | None = Field(None, min_length=1)
    description: str | None = Field(None, min_length=1)
    content: str | list[ContentBlock] | None = None
    category: str | None = Field(None, min_length=1)
    subcategory: list[str] | None = None
    tags: list[str] | None = None
    label: str | None = None

    # Empty string detaches the article from its section
    section_id: str | None = None

    is_live: bool | None = Field(None, alias="isLive")
    was_live: bool | None = Field(None, alias="wasLive")
    is_breaking: bool | None = Field(None, alias="isBreaking")
    is_topstory: bool | None = Field(None, alias="isTopstory")
    is_headline: bool | None = Field(None, alias="isHeadline")

    source_name: str | None = None
    creator: str | None = None
    image_url: str | None = None
    published_at: datetime | None = None
    meta_title: str | None = None
    meta_description: str | None = None


def resolve_body(
    raw: str | list[ContentBlock] | PlainContent | LiveContent,
    *,
    live: bool,
    title: str,
    description: str,
    image_url: str | None,
    published_at: datetime,
) -> PlainContent | LiveContent:
    """Normalize whatever the caller sent into the variant matching ``live``.

    A live article always carries blocks; a flat string becomes its first
    block. A non-live article keeps blocks it already has (a finished live
    blog) but plain input stays plain.
    """
    if isinstance(raw, (PlainContent, LiveContent)):
        body = raw
    elif isinstance(raw, list):
        body = LiveContent(blocks=raw)
    else:
        body = PlainContent(text=raw or "")

    if live and isinstance(body, PlainContent):
        return LiveContent(
            blocks=[
                ContentBlock(
                    content_title=title,
                    content_description=description,
                    content_detail=body.text or description,
                    content_image_url=image_url,
                    content_published_at=published_at,
                )
            ]
        )
    return body


def body_to_wire(body: PlainContent | LiveContent) -> str | list[dict]:
    """The shape clients see: a string, or the list of blocks."""
    if isinstance(body, LiveContent):
        return [b.model_dump(mode="json", by_alias=True) for b in body.blocks]
    return body.text


def body_text(body: PlainContent | LiveContent) -> str:
    """Flattened text used for search indexing."""
    if isinstance(body, LiveContent):
        return "\n".join(
            f"{b.content_title} {b.content_description} {b.content_detail}" for b in body.blocks
        )
    return body.text


_META_STRIP = re.compile(r"[^a-zA-Z0-9\s-]")


def meta_title_for(title: str | None) -> str:
    if not title:
        return ""
    cleaned = _META_STRIP.sub("", title)
    if len(cleaned) <= 60:
        return cleaned
    return cleaned[:57].strip() + "..."


def meta_description_for(description: str | None, title: str | None = None) -> str:
    if description:
        return description[:155].strip()
    return f"{title or 'News update'}. Read the full story."[:155]
