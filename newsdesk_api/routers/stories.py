"""Story endpoints: ``/api/{site}/{collection}`` for features, opinions,
graphics and charts. Included after the article and section routers so
those prefixes win."""

from fastapi import APIRouter, Depends, Query, Request

from newsdesk.models.story import StoryCreate, StoryUpdate
from newsdesk.services.stories import StoryService
from newsdesk_api.auth import require_admin
from newsdesk_api.deps import get_stories
from newsdesk_api.forms import read_model
from newsdesk_api.responses import ok

router = APIRouter(prefix="/{site}/{collection}", tags=["stories"])


@router.get("")
async def list_stories(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: str | None = None,
    service: StoryService = Depends(get_stories),
) -> dict:
    payload, hit = await service.list(page, limit, category)
    return ok(payload, cached=hit)


@router.get("/search")
async def search_stories(
    q: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: StoryService = Depends(get_stories),
) -> dict:
    payload, hit = await service.search(q, page, limit)
    return ok(payload, cached=hit)


@router.get("/slug/{slug}")
async def story_by_slug(slug: str, service: StoryService = Depends(get_stories)) -> dict:
    story, hit = await service.get("slug", slug)
    return ok({"data": {service.kind: story}}, cached=hit)


@router.get("/{story_id}")
async def get_story(story_id: str, service: StoryService = Depends(get_stories)) -> dict:
    story, hit = await service.get("id", story_id)
    return ok({"data": {service.kind: story}}, cached=hit)


@router.post("", status_code=201, dependencies=[Depends(require_admin)])
async def create_story(request: Request, service: StoryService = Depends(get_stories)) -> dict:
    body, image = await read_model(request, StoryCreate)
    story = await service.create(body, image)
    return ok({"data": {service.kind: story}})


@router.put("/{story_id}", dependencies=[Depends(require_admin)])
async def update_story(
    story_id: str, request: Request, service: StoryService = Depends(get_stories)
) -> dict:
    body, image = await read_model(request, StoryUpdate)
    story = await service.update(story_id, body, image)
    return ok({"data": {service.kind: story}})


@router.delete("/{story_id}", dependencies=[Depends(require_admin)])
async def delete_story(story_id: str, service: StoryService = Depends(get_stories)) -> dict:
    await service.delete(story_id)
    return ok(message=f"{service.label} deleted")
