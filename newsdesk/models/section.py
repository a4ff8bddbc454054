"""Section payloads (politics site)."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from newsdesk.models.content import split_csv


class _SectionFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")

    @field_validator("tags", "subcategory", mode="before", check_fields=False)
    @classmethod
    def _labels(cls, v):
        return split_csv(v)


class SectionCreate(_SectionFields):
    section_name: str = Field(min_length=1)
    section_code: str = Field(min_length=1)
    section_slug: str | None = None
    section_description: str | None = None
    is_section_important: bool = Field(False, alias="isSectionImportant")
    expires_at: datetime | None = None
    tags: list[str] = Field(default_factory=list)
    category: str | None = None
    subcategory: list[str] = Field(default_factory=list)
    display_order: int = Field(0, alias="displayOrder")
    meta_title: str | None = None
    meta_description: str | None = None
    section_image_url: str | None = None
    section_color: str = "#000000"
    section_background_color: str | None = None


class SectionUpdate(_SectionFields):
    section_name: str | None = Field(None, min_length=1)
    section_code: str | None = Field(None, min_length=1)
    section_slug: str | None = Field(None, min_length=1)
    section_description: str | None = None
    is_section_important: bool | None = Field(None, alias="isSectionImportant")
    expires_at: datetime | None = None
    tags: list[str] | None = None
    category: str | None = None
    subcategory: list[str] | None = None
    display_order: int | None = Field(None, alias="displayOrder")
    meta_title: str | None = None
    meta_description: str | None = None
    section_image_url: str | None = None
    section_color: str | None = None
    section_background_color: str | None = None
