from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from newsdesk.db.models import ArticleRow
from newsdesk.errors import Conflict, NotFound, ValidationFailed
from newsdesk.models import ArticleUpdate, ContentBlock
from newsdesk.services.articles import ArticleFilters
from newsdesk.storage.blobs import Upload

from conftest import article

PNG = Upload(data=b"\x89PNG\r\n\x1a\n" + b"0" * 64, mime_type="image/png", filename="a.png")


async def _headline_count(store, site="ghanapolitan"):
    async with store.session() as session:
        return (
            await session.execute(
                select(func.count())
                .select_from(ArticleRow)
                .where(ArticleRow.site == site, ArticleRow.is_headline.is_(True))
            )
        ).scalar_one()


# ── Create ──


async def test_create_fills_defaults(politics, clock):
    created = await politics.create(article())

    assert created["slug"].startswith("parliament-approves-budget-")
    assert created["source_name"] == "Ghanapolitan"
    assert created["creator"] == "Admin"
    assert created["meta_title"] == "Parliament approves budget"
    assert created["published_at"] == clock.now.isoformat()
    assert created["tags"] == ["budget", "parliament"]
    assert created["content"] == "Members voted late on Thursday."
    assert created["has_section"] is False


async def test_unsuffixed_site_slug(sports):
    created = await sports.create(article(title="Hearts of Oak sign striker"))
    assert created["slug"] == "hearts-of-oak-sign-striker"


async def test_duplicate_slug_conflicts_and_stores_nothing(sports, store):
    await sports.create(article(title="Same title"))
    with pytest.raises(Conflict):
        await sports.create(article(title="Same title"))
    async with store.session() as session:
        count = (await session.execute(select(func.count()).select_from(ArticleRow))).scalar_one()
    assert count == 1


async def test_slug_conflict_is_per_site(sports, services):
    await sports.create(article(title="Same title"))
    other = await services.articles["afrobeatsrep"].create(article(title="Same title"))
    assert other["slug"] == "same-title"


async def test_live_article_wraps_plain_content_in_a_block(politics):
    created = await politics.create(article(isLive=True))
    assert isinstance(created["content"], list)
    assert created["content"][0]["content_detail"] == "Members voted late on Thursday."


async def test_sections_are_politics_only(sports):
    with pytest.raises(ValidationFailed):
        await sports.create(article(section_id="a" * 24))


async def test_unknown_section_is_not_found(politics):
    with pytest.raises(NotFound):
        await politics.create(article(section_id="a" * 24))


async def test_image_upload_is_stored_and_deleted_with_the_article(politics, tmp_path):
    created = await politics.create(article(), PNG)
    assert created["image_url"].startswith("/media/articles/")
    stored = tmp_path / "media" / created["image_url"].removeprefix("/media/")
    assert stored.exists()

    await politics.delete(created["id"])
    assert not stored.exists()


async def test_rejects_non_image_upload(politics):
    with pytest.raises(ValidationFailed):
        await politics.create(article(), Upload(data=b"%PDF", mime_type="application/pdf"))


async def test_image_is_deleted_after_the_row(politics, blobs, store, monkeypatch):
    created = await politics.create(article(), PNG)
    seen = []
    original = blobs.delete

    async def delete(url):
        async with store.session() as session:
            seen.append(await session.get(ArticleRow, created["id"]))
        await original(url)

    monkeypatch.setattr(blobs, "delete", delete)
    await politics.delete(created["id"])

    assert seen == [None]


# ── Headline ──


async def test_at_most_one_headline(politics, store, clock):
    first = await politics.create(article(title="First", isHeadline=True))
    clock.advance(seconds=1)
    second = await politics.create(article(title="Second", isHeadline=True))

    assert await _headline_count(store) == 1
    data, _ = await politics.headline()
    assert data["headline"]["id"] == second["id"]
    old, _ = await politics.get_by_id(first["id"])
    assert old["isHeadline"] is False


async def test_promotion_by_update_demotes_previous(politics, store, clock):
    first = await politics.create(article(title="First", isHeadline=True))
    clock.advance(seconds=1)
    second = await politics.create(article(title="Second"))
    await politics.headline()

    await politics.update(second["id"], ArticleUpdate(isHeadline=True))

    assert await _headline_count(store) == 1
    data, hit = await politics.headline()
    assert hit is False
    assert data["headline"]["id"] == second["id"]
    assert (await politics.get_by_id(first["id"]))[0]["isHeadline"] is False


async def test_headline_is_per_site(politics, sports, store):
    await politics.create(article(title="Politics lead", isHeadline=True))
    await sports.create(article(title="Sports lead", isHeadline=True))
    assert await _headline_count(store, "ghanapolitan") == 1
    assert await _headline_count(store, "ghanascore") == 1


async def test_headline_lists_similar_by_tag(politics, clock):
    await politics.create(article(title="Lead", isHeadline=True, tags=["budget"]))
    clock.advance(seconds=1)
    related = await politics.create(article(title="Related", tags=["budget"]))
    clock.advance(seconds=1)
    await politics.create(article(title="Unrelated", tags=["sports"]))

    data, _ = await politics.headline()
    assert [a["id"] for a in data["similarArticles"]] == [related["id"]]


async def test_no_headline_is_not_found(politics):
    with pytest.raises(NotFound):
        await politics.headline()


# ── Live coverage ──


async def test_live_lifecycle(politics):
    created = await politics.create(article(isLive=True))

    updated = await politics.add_live_update(
        created["id"],
        ContentBlock(
            content_title="Vote called",
            content_description="Speaker calls the vote",
            content_detail="Ayes have it",
            isKey=True,
        ),
    )
    assert len(updated["content"]) == 2

    ended = await politics.update(created["id"], ArticleUpdate(wasLive=True))
    assert ended["isLive"] is False
    assert ended["wasLive"] is True
    # A finished live blog keeps its entries
    assert len(ended["content"]) == 2

    with pytest.raises(ValidationFailed):
        await politics.update(created["id"], ArticleUpdate(isLive=True))


async def test_is_live_false_is_rejected(politics):
    created = await politics.create(article(isLive=True))
    with pytest.raises(ValidationFailed):
        await politics.update(created["id"], ArticleUpdate(isLive=False))


async def test_key_events_on_slug_lookup(politics):
    created = await politics.create(
        article(
            isLive=True,
            content=[
                {"content_title": "a", "content_description": "b", "content_detail": "c", "isKey": True},
                {"content_title": "d", "content_description": "e", "content_detail": "f"},
            ],
        )
    )
    data, _ = await politics.get_by_slug(created["slug"])
    assert [e["content_title"] for e in data["keyEvents"]] == ["a"]


async def test_live_updates_only_for_live_articles(politics):
    created = await politics.create(article())
    with pytest.raises(ValidationFailed):
        await politics.add_live_update(
            created["id"],
            ContentBlock(content_title="x", content_description="y", content_detail="z"),
        )


# ── Update ──


async def test_title_change_regenerates_slug(sports):
    created = await sports.create(article(title="Old title"))
    updated = await sports.update(created["id"], ArticleUpdate(title="New title"))
    assert updated["slug"] == "new-title"
    with pytest.raises(NotFound):
        await sports.get_by_slug("old-title")


async def test_title_change_into_existing_slug_conflicts(sports):
    await sports.create(article(title="Taken"))
    created = await sports.create(article(title="Free"))
    with pytest.raises(Conflict):
        await sports.update(created["id"], ArticleUpdate(title="Taken"))


async def test_image_replacement_deletes_old_blob(politics, tmp_path):
    created = await politics.create(article(), PNG)
    old = tmp_path / "media" / created["image_url"].removeprefix("/media/")

    updated = await politics.update(created["id"], ArticleUpdate(), PNG)

    assert updated["image_url"] != created["image_url"]
    assert not old.exists()


async def test_naive_published_at_is_stored_as_utc(sports):
    created = await sports.create(article(title="Derby day"))

    updated = await sports.update(
        created["id"], ArticleUpdate(published_at=datetime(2026, 3, 1, 8, 0))
    )
    fetched, _ = await sports.get_by_id(created["id"])

    assert updated["published_at"] == "2026-03-01T08:00:00+00:00"
    assert fetched["published_at"] == updated["published_at"]


async def test_malformed_id(politics):
    with pytest.raises(ValidationFailed):
        await politics.get_by_id("not-an-id")
    with pytest.raises(NotFound):
        await politics.get_by_id("f" * 24)


async def test_articles_are_scoped_to_their_site(politics, sports):
    created = await politics.create(article())
    with pytest.raises(NotFound):
        await sports.get_by_id(created["id"])


# ── Listings ──


async def test_list_is_cached_per_filter(politics, clock):
    await politics.create(article(title="A", category="politics"))
    clock.advance(seconds=1)
    await politics.create(article(title="B", category="economy"))

    everything, hit = await politics.list()
    assert (everything["total"], hit) == (2, False)
    economy, hit = await politics.list(filters=ArticleFilters(category="economy"))
    assert (economy["total"], hit) == (1, False)
    again, hit = await politics.list(filters=ArticleFilters(category="economy"))
    assert (again["total"], hit) == (1, True)


async def test_write_invalidates_listings(politics):
    await politics.create(article(title="A"))
    await politics.list()
    await politics.create(article(title="B"))
    data, hit = await politics.list()
    assert hit is False
    assert data["total"] == 2


async def test_list_pagination_shape(sports, clock):
    for i in range(3):
        await sports.create(article(title=f"Story {i}"))
        clock.advance(seconds=1)
    data, _ = await sports.list(page=2, limit=2)
    assert data["results"] == 1
    assert data["total"] == 3
    assert data["totalPages"] == 2
    assert data["currentPage"] == 2
    assert [a["title"] for a in data["data"]["articles"]] == ["Story 0"]


async def test_status_vocabulary(politics):
    await politics.create(article(isTopstory=True))
    data, _ = await politics.by_status("topstory")
    assert data["statusType"] == "topstory"
    assert data["total"] == 1
    with pytest.raises(ValidationFailed):
        await politics.by_status("topstories")


async def test_search_matches_title_content_and_tags(politics, clock):
    await politics.create(article(title="Budget passes", tags=["finance"]))
    clock.advance(seconds=1)
    await politics.create(article(title="Election date set", content="The EC met on Friday", tags=["ec"]))

    assert (await politics.search("passes"))[0]["total"] == 1
    assert (await politics.search("budget"))[0]["total"] == 2
    assert (await politics.search("friday"))[0]["total"] == 1
    assert (await politics.search("FINANCE"))[0]["total"] == 1
    assert (await politics.search("100%"))[0]["total"] == 0
    with pytest.raises(ValidationFailed):
        await politics.search("  ")


async def test_similar_by_shared_tag(sports, clock):
    base = await sports.create(article(title="Base", tags=["afcon"]))
    clock.advance(seconds=1)
    await sports.create(article(title="Sibling", tags=["afcon", "ghana"]))
    await sports.create(article(title="Stranger", tags=["boxing"]))

    data, _ = await sports.similar(base["slug"])
    assert [a["title"] for a in data["data"]["articles"]] == ["Sibling"]


# ── Labels, recent and featured ──


async def test_articles_by_label(services, clock):
    music = services.articles["afrobeatsrep"]
    signed = await music.create(article(title="New single", label="Chocolate City"))
    clock.advance(seconds=1)
    await music.create(article(title="Tour dates", label="Mavin"))

    data, hit = await music.by_label("Chocolate City")
    assert data["label"] == "Chocolate City"
    assert [a["id"] for a in data["data"]["articles"]] == [signed["id"]]
    assert data["data"]["articles"][0]["label"] == "Chocolate City"
    assert hit is False
    assert (await music.by_label("Chocolate City"))[1] is True

    assert (await music.search("mavin"))[0]["total"] == 1
    listed, _ = await music.list(filters=ArticleFilters(label="Mavin"))
    assert listed["total"] == 1


async def test_recent_covers_the_last_day(sports, clock):
    await sports.create(article(title="Old news", published_at=clock.now - timedelta(days=2)))
    fresh = await sports.create(article(title="Fresh news"))

    items, _ = await sports.recent()

    assert [a["id"] for a in items] == [fresh["id"]]


async def test_featured_content_leads_with_the_headline(sports, clock):
    headline = await sports.create(article(title="Lead story", isHeadline=True))
    others = []
    for i in range(3):
        clock.advance(seconds=1)
        others.append(await sports.create(article(title=f"Story {i}")))

    items, _ = await sports.featured_content(limit=3)

    assert [a["id"] for a in items] == [headline["id"], others[2]["id"], others[1]["id"]]
