"""Section endpoints, mounted under ``/api/{site}/sections`` (politics only)."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from newsdesk.models.section import SectionCreate, SectionUpdate
from newsdesk.services.sections import SectionFilters, SectionService
from newsdesk_api.auth import require_admin
from newsdesk_api.deps import get_sections
from newsdesk_api.forms import read_model
from newsdesk_api.responses import ok

router = APIRouter(prefix="/{site}/sections", tags=["sections"])

Admin = [Depends(require_admin)]


# ── Request models ──────────────────────────────────


class TagsBody(BaseModel):
    tags: list[str] = Field(min_length=1)


class FeaturedBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    article_id: str = Field(alias="articleId")


class ExpirationBody(BaseModel):
    expires_at: datetime


class ExtendBody(BaseModel):
    days: int = Field(ge=1)


# ── Reads ───────────────────────────────────────────


@router.get("")
async def list_sections(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    is_active: bool | None = None,
    is_important: bool | None = Query(None, alias="isSectionImportant"),
    category: str | None = None,
    tag: str | None = None,
    search: str | None = None,
    service: SectionService = Depends(get_sections),
) -> dict:
    filters = SectionFilters(
        is_active=is_active,
        is_important=is_important,
        category=category,
        tag=tag,
        search=search,
    )
    payload, hit = await service.list(page, limit, filters)
    return ok(payload, cached=hit)


@router.get("/important")
async def important_sections(
    limit: int = Query(10, ge=1, le=50), service: SectionService = Depends(get_sections)
) -> dict:
    items, hit = await service.important(limit)
    return ok({"results": len(items), "data": {"sections": items}}, cached=hit)


@router.get("/expiring")
async def expiring_sections(
    days: int = Query(7, ge=1), service: SectionService = Depends(get_sections)
) -> dict:
    items = await service.expiring(days)
    return ok({"results": len(items), "data": {"sections": items}})


@router.get("/slug/{section_slug}")
async def section_by_slug(section_slug: str, service: SectionService = Depends(get_sections)) -> dict:
    section, hit = await service.get("slug", section_slug)
    return ok({"data": {"section": section}}, cached=hit)


@router.get("/code/{code}")
async def section_by_code(code: str, service: SectionService = Depends(get_sections)) -> dict:
    section, hit = await service.get("code", code)
    return ok({"data": {"section": section}}, cached=hit)


@router.get("/{section_id}")
async def get_section(section_id: str, service: SectionService = Depends(get_sections)) -> dict:
    section, hit = await service.get("id", section_id)
    return ok({"data": {"section": section}}, cached=hit)


@router.get("/{section_id}/featured")
async def featured_articles(section_id: str, service: SectionService = Depends(get_sections)) -> dict:
    items = await service.featured(section_id)
    return ok({"results": len(items), "data": {"articles": items}})


# ── Writes ──────────────────────────────────────────


@router.post("", status_code=201, dependencies=Admin)
async def create_section(request: Request, service: SectionService = Depends(get_sections)) -> dict:
    body, image = await read_model(request, SectionCreate)
    section = await service.create(body, image)
    return ok({"data": {"section": section}})


@router.put("/{section_id}", dependencies=Admin)
async def update_section(
    section_id: str, request: Request, service: SectionService = Depends(get_sections)
) -> dict:
    body, image = await read_model(request, SectionUpdate)
    section = await service.update(section_id, body, image)
    return ok({"data": {"section": section}})


@router.delete("/{section_id}", dependencies=Admin)
async def delete_section(section_id: str, service: SectionService = Depends(get_sections)) -> dict:
    detached = await service.delete(section_id)
    return ok(message="Section deleted", detachedArticles=detached)


@router.post("/sync/articles-count", dependencies=Admin)
async def sync_article_counts(service: SectionService = Depends(get_sections)) -> dict:
    result = await service.sync_counts()
    return ok({"data": result})


@router.post("/slug/{section_slug}/recount", dependencies=Admin)
async def recount_section(section_slug: str, service: SectionService = Depends(get_sections)) -> dict:
    count = await service.recount(section_slug)
    return ok({"data": {"section_slug": section_slug, "articles_count": count}})


@router.post("/deactivate-expired", dependencies=Admin)
async def deactivate_expired(service: SectionService = Depends(get_sections)) -> dict:
    count = await service.deactivate_expired()
    return ok({"data": {"deactivated": count}})


@router.post("/{section_id}/featured", dependencies=Admin)
async def add_featured(
    section_id: str, body: FeaturedBody, service: SectionService = Depends(get_sections)
) -> dict:
    section = await service.add_featured(section_id, body.article_id)
    return ok({"data": {"section": section}})


@router.delete("/{section_id}/featured/{article_id}", dependencies=Admin)
async def remove_featured(
    section_id: str, article_id: str, service: SectionService = Depends(get_sections)
) -> dict:
    section = await service.remove_featured(section_id, article_id)
    return ok({"data": {"section": section}})


@router.post("/{section_id}/tags", dependencies=Admin)
async def add_tags(
    section_id: str, body: TagsBody, service: SectionService = Depends(get_sections)
) -> dict:
    section = await service.add_tags(section_id, body.tags)
    return ok({"data": {"section": section}})


@router.delete("/{section_id}/tags", dependencies=Admin)
async def remove_tags(
    section_id: str, body: TagsBody, service: SectionService = Depends(get_sections)
) -> dict:
    section = await service.remove_tags(section_id, body.tags)
    return ok({"data": {"section": section}})


@router.patch("/{section_id}/toggle-importance", dependencies=Admin)
async def toggle_importance(section_id: str, service: SectionService = Depends(get_sections)) -> dict:
    section = await service.toggle_important(section_id)
    return ok({"data": {"section": section}})


@router.patch("/{section_id}/toggle-active", dependencies=Admin)
async def toggle_active(section_id: str, service: SectionService = Depends(get_sections)) -> dict:
    section = await service.toggle_active(section_id)
    return ok({"data": {"section": section}})


@router.put("/{section_id}/expiration", dependencies=Admin)
async def set_expiration(
    section_id: str, body: ExpirationBody, service: SectionService = Depends(get_sections)
) -> dict:
    section = await service.set_expiration(section_id, body.expires_at)
    return ok({"data": {"section": section}})


@router.patch("/{section_id}/expiration/extend", dependencies=Admin)
async def extend_expiration(
    section_id: str, body: ExtendBody, service: SectionService = Depends(get_sections)
) -> dict:
    section = await service.extend_expiration(section_id, body.days)
    return ok({"data": {"section": section}})


@router.delete("/{section_id}/expiration", dependencies=Admin)
async def remove_expiration(section_id: str, service: SectionService = Depends(get_sections)) -> dict:
    section = await service.remove_expiration(section_id)
    return ok({"data": {"section": section}})
