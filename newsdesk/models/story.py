"""Payloads for features, opinions, graphics and charts."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from newsdesk.models.content import split_csv


class _StoryFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")

    @field_validator("tags", "subcategory", mode="before", check_fields=False)
    @classmethod
    def _labels(cls, v: Any) -> Any:
        return split_csv(v)


class StoryCreate(_StoryFields):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    content: str = ""
    category: str = Field(min_length=1)
    subcategory: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    slug: str | None = None
    image_url: str | None = None
    creator: str | None = None
    source_name: str | None = None
    published_at: datetime | None = None
    meta_title: str | None = None
    meta_description: str | None = None
    # Chart series / graphic layout; free-form
    data: dict[str, Any] | None = None


class StoryUpdate(_StoryFields):
    title: str | None = Field(None, min_length=1)
    description: str | None = Field(None, min_length=1)
    content: str | None = None
    category: str | None = Field(None, min_length=1)
    subcategory: list[str] | None = None
    tags: list[str] | None = None
    image_url: str | None = None
    creator: str | None = None
    source_name: str | None = None
    published_at: datetime | None = None
    meta_title: str | None = None
    meta_description: str | None = None
    data: dict[str, Any] | None = None
