"""Article endpoints, mounted per site under ``/api/{site}/articles``."""

from fastapi import APIRouter, Depends, Query, Request

from newsdesk.models.comments import CommentEdit, CommentIn, VoteDirection
from newsdesk.models.content import ArticleCreate, ArticleUpdate, ContentBlock
from newsdesk.services.articles import ArticleFilters, ArticleService
from newsdesk_api.auth import require_admin
from newsdesk_api.deps import get_articles
from newsdesk_api.forms import parse, read_model, read_payload
from newsdesk_api.responses import ok

router = APIRouter(prefix="/{site}/articles", tags=["articles"])


# ── Helpers ─────────────────────────────────────────


def _voter(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


# ── Listings ────────────────────────────────────────


@router.get("")
async def list_articles(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: str | None = None,
    subcategory: str | None = None,
    label: str | None = None,
    section_id: str | None = None,
    section_slug: str | None = None,
    has_section: bool | None = None,
    is_breaking: bool | None = Query(None, alias="isBreaking"),
    is_live: bool | None = Query(None, alias="isLive"),
    is_topstory: bool | None = Query(None, alias="isTopstory"),
    is_headline: bool | None = Query(None, alias="isHeadline"),
    service: ArticleService = Depends(get_articles),
) -> dict:
    filters = ArticleFilters(
        category=category,
        subcategory=subcategory,
        section_id=section_id,
        section_slug=section_slug,
        has_section=has_section,
        is_breaking=is_breaking,
        is_live=is_live,
        is_topstory=is_topstory,
        is_headline=is_headline,
        label=label,
    )
    payload, hit = await service.list(page, limit, filters)
    return ok(payload, cached=hit)


@router.get("/search")
async def search_articles(
    q: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: ArticleService = Depends(get_articles),
) -> dict:
    payload, hit = await service.search(q, page, limit)
    return ok(payload, cached=hit)


@router.get("/headline/current")
async def current_headline(service: ArticleService = Depends(get_articles)) -> dict:
    payload, hit = await service.headline()
    return ok({"data": payload}, cached=hit)


@router.get("/breaking")
async def breaking_news(
    limit: int = Query(5, ge=1, le=50), service: ArticleService = Depends(get_articles)
) -> dict:
    items, hit = await service.breaking(limit)
    return ok({"results": len(items), "data": {"articles": items}}, cached=hit)


@router.get("/top-stories")
async def top_stories(
    limit: int = Query(10, ge=1, le=50), service: ArticleService = Depends(get_articles)
) -> dict:
    items, hit = await service.top_stories(limit)
    return ok({"results": len(items), "data": {"articles": items}}, cached=hit)


@router.get("/live")
async def live_articles(
    page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), service: ArticleService = Depends(get_articles)
) -> dict:
    payload, hit = await service.live(page, limit)
    return ok(payload, cached=hit)


@router.get("/status/{status}")
async def articles_by_status(
    status: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: str | None = None,
    subcategory: str | None = None,
    service: ArticleService = Depends(get_articles),
) -> dict:
    payload, hit = await service.by_status(
        status, page, limit, category=category, subcategory=subcategory
    )
    return ok(payload, cached=hit)


@router.get("/section/{section_slug}")
async def articles_in_section(
    section_slug: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: ArticleService = Depends(get_articles),
) -> dict:
    payload, hit = await service.by_section(section_slug, page, limit)
    return ok(payload, cached=hit)


@router.get("/similar/{slug}")
async def similar_articles(
    slug: str,
    page: int = Query(1, ge=1),
    limit: int = Query(5, ge=1, le=50),
    service: ArticleService = Depends(get_articles),
) -> dict:
    payload, hit = await service.similar(slug, page, limit)
    return ok(payload, cached=hit)


@router.get("/label/{label}")
async def articles_by_label(
    label: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: ArticleService = Depends(get_articles),
) -> dict:
    payload, hit = await service.by_label(label, page, limit)
    return ok(payload, cached=hit)


@router.get("/recent")
async def recent_articles(
    limit: int = Query(10, ge=1, le=50), service: ArticleService = Depends(get_articles)
) -> dict:
    items, hit = await service.recent(limit)
    return ok({"results": len(items), "data": {"articles": items}}, cached=hit)


@router.get("/featured")
async def featured_content(
    limit: int = Query(6, ge=1, le=50), service: ArticleService = Depends(get_articles)
) -> dict:
    items, hit = await service.featured_content(limit)
    return ok({"results": len(items), "data": {"articles": items}}, cached=hit)


@router.get("/slug/{slug}")
async def article_by_slug(slug: str, service: ArticleService = Depends(get_articles)) -> dict:
    article, hit = await service.get_by_slug(slug)
    return ok({"data": {"article": article}}, cached=hit)


# ── Comments (public) ───────────────────────────────


@router.get("/slug/{slug}/comments")
async def list_comments(
    slug: str,
    sort: str = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: ArticleService = Depends(get_articles),
) -> dict:
    payload, hit = await service.comments(slug, sort, page, limit)
    return ok(payload, cached=hit)


@router.post("/slug/{slug}/comments", status_code=201)
async def add_comment(
    slug: str, body: CommentIn, service: ArticleService = Depends(get_articles)
) -> dict:
    comment = await service.add_comment(slug, body)
    return ok({"data": {"comment": comment}})


@router.put("/slug/{slug}/comments/{comment_id}")
async def edit_comment(
    slug: str, comment_id: str, body: CommentEdit, service: ArticleService = Depends(get_articles)
) -> dict:
    comment = await service.edit_comment(slug, comment_id, body)
    return ok({"data": {"comment": comment}})


@router.delete("/slug/{slug}/comments/{comment_id}")
async def delete_comment(
    slug: str, comment_id: str, service: ArticleService = Depends(get_articles)
) -> dict:
    await service.delete_comment(slug, comment_id)
    return ok(message="Comment deleted")


@router.post("/slug/{slug}/comments/{comment_id}/vote/{direction}")
async def vote_comment(
    slug: str,
    comment_id: str,
    direction: VoteDirection,
    request: Request,
    service: ArticleService = Depends(get_articles),
) -> dict:
    comment = await service.vote(slug, comment_id, _voter(request), direction)
    return ok({"data": {"comment": comment}})


@router.post("/slug/{slug}/comments/{comment_id}/replies", status_code=201)
async def add_reply(
    slug: str, comment_id: str, body: CommentIn, service: ArticleService = Depends(get_articles)
) -> dict:
    reply = await service.add_reply(slug, comment_id, body)
    return ok({"data": {"reply": reply}})


@router.put("/slug/{slug}/comments/{comment_id}/replies/{reply_id}")
async def edit_reply(
    slug: str,
    comment_id: str,
    reply_id: str,
    body: CommentEdit,
    service: ArticleService = Depends(get_articles),
) -> dict:
    reply = await service.edit_reply(slug, comment_id, reply_id, body)
    return ok({"data": {"reply": reply}})


@router.delete("/slug/{slug}/comments/{comment_id}/replies/{reply_id}")
async def delete_reply(
    slug: str, comment_id: str, reply_id: str, service: ArticleService = Depends(get_articles)
) -> dict:
    await service.delete_reply(slug, comment_id, reply_id)
    return ok(message="Reply deleted")


@router.post("/slug/{slug}/comments/{comment_id}/replies/{reply_id}/vote/{direction}")
async def vote_reply(
    slug: str,
    comment_id: str,
    reply_id: str,
    direction: VoteDirection,
    request: Request,
    service: ArticleService = Depends(get_articles),
) -> dict:
    reply = await service.vote(slug, comment_id, _voter(request), direction, reply_id=reply_id)
    return ok({"data": {"reply": reply}})


# ── Single article ──────────────────────────────────


@router.get("/{article_id}")
async def get_article(article_id: str, service: ArticleService = Depends(get_articles)) -> dict:
    article, hit = await service.get_by_id(article_id)
    return ok({"data": {"article": article}}, cached=hit)


@router.post("", status_code=201, dependencies=[Depends(require_admin)])
async def create_article(request: Request, service: ArticleService = Depends(get_articles)) -> dict:
    body, image = await read_model(request, ArticleCreate)
    article = await service.create(body, image)
    return ok({"data": {"article": article}})


@router.put("/{article_id}", dependencies=[Depends(require_admin)])
async def update_article(
    article_id: str, request: Request, service: ArticleService = Depends(get_articles)
) -> dict:
    body, image = await read_model(request, ArticleUpdate)
    article = await service.update(article_id, body, image)
    return ok({"data": {"article": article}})


@router.delete("/{article_id}", dependencies=[Depends(require_admin)])
async def delete_article(article_id: str, service: ArticleService = Depends(get_articles)) -> dict:
    await service.delete(article_id)
    return ok(message="Article deleted")


@router.patch("/{article_id}/assign-section", dependencies=[Depends(require_admin)])
async def assign_section(
    article_id: str, request: Request, service: ArticleService = Depends(get_articles)
) -> dict:
    data, _ = await read_payload(request)
    article = await service.assign_section(article_id, data.get("section_id"))
    return ok({"data": {"article": article}})


@router.patch("/{article_id}/remove-section", dependencies=[Depends(require_admin)])
async def remove_section(article_id: str, service: ArticleService = Depends(get_articles)) -> dict:
    article = await service.remove_section(article_id)
    return ok({"data": {"article": article}})


@router.post("/{article_id}/live-updates", status_code=201, dependencies=[Depends(require_admin)])
async def add_live_update(
    article_id: str, request: Request, service: ArticleService = Depends(get_articles)
) -> dict:
    data, _ = await read_payload(request)
    block = parse(ContentBlock, data)
    article = await service.add_live_update(article_id, block)
    return ok({"data": {"article": article}})
