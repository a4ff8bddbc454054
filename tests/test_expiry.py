from sqlalchemy import select

from newsdesk.db.models import ArticleRow

from conftest import article


async def _row(store, article_id):
    async with store.session() as session:
        return (await session.execute(select(ArticleRow).where(ArticleRow.id == article_id))).scalar_one()


async def test_breaking_flag_gets_thirty_minute_expiry(politics, store, clock):
    created = await politics.create(article(isBreaking=True))
    row = await _row(store, created["id"])
    assert row.is_breaking is True
    assert row.breaking_expires_at == clock.now.replace(minute=30)


async def test_breaking_expires_on_next_read(politics, clock):
    created = await politics.create(article(isBreaking=True))

    items, _ = await politics.breaking()
    assert [a["id"] for a in items] == [created["id"]]

    clock.advance(minutes=31)
    items, hit = await politics.breaking()
    assert items == []
    assert hit is False

    data, _ = await politics.get_by_id(created["id"])
    assert data["isBreaking"] is False
    assert data["breakingExpiresAt"] is None


async def test_not_expired_yet(politics, services, clock):
    await politics.create(article(isBreaking=True))
    clock.advance(minutes=29)
    assert await services.reconciler.reconcile_breaking("ghanapolitan") == 0


async def test_topstory_reconcile_clears_flag_and_expiry(politics, services, store, clock):
    created = await politics.create(article(isTopstory=True))
    clock.advance(hours=49)

    assert await services.reconciler.reconcile_topstory("ghanapolitan") == 1
    row = await _row(store, created["id"])
    assert row.is_topstory is False
    assert row.topstory_expires_at is None


async def test_reconcile_is_idempotent(politics, services, clock):
    await politics.create(article(isBreaking=True, isTopstory=True))
    clock.advance(days=3)

    first = await services.reconciler.reconcile("ghanapolitan")
    second = await services.reconciler.reconcile("ghanapolitan")

    assert first == {"breaking": 1, "topstory": 1}
    assert second == {"breaking": 0, "topstory": 0}


async def test_reconcile_is_scoped_to_site(politics, sports, services, clock):
    await politics.create(article(isBreaking=True))
    await sports.create(article(title="Derby day", isBreaking=True))
    clock.advance(hours=1)

    result = await services.reconciler.reconcile_all()

    assert result["ghanapolitan"]["breaking"] == 1
    assert result["ghanascore"]["breaking"] == 1
    assert result["afrobeatsrep"]["breaking"] == 0


async def test_reconcile_invalidates_cached_single_item(politics, cache, clock):
    created = await politics.create(article(isBreaking=True))
    await politics.get_by_slug(created["slug"])
    assert await cache.get(politics.keys.article_slug(created["slug"])) is not None

    clock.advance(minutes=45)
    data, hit = await politics.get_by_slug(created["slug"])

    assert hit is False
    assert data["isBreaking"] is False


async def test_turning_breaking_off_clears_expiry(politics, store):
    from newsdesk.models import ArticleUpdate

    created = await politics.create(article(isBreaking=True))
    await politics.update(created["id"], ArticleUpdate(isBreaking=False))

    row = await _row(store, created["id"])
    assert row.is_breaking is False
    assert row.breaking_expires_at is None


async def test_scheduler_pass_expires_flags_and_sections(politics, sections, services, clock):
    from datetime import timedelta

    from newsdesk_api.scheduler import run_once

    from conftest import section

    await politics.create(article(isBreaking=True))
    await sections.create(section(expires_at=clock.now + timedelta(days=1)))
    clock.advance(days=2)

    result = await run_once(services)

    assert result["flags"]["ghanapolitan"]["breaking"] == 1
    assert result["sections"] == {"ghanapolitan": 1}


async def test_live_listing_hides_expired_breaking(politics, clock):
    await politics.create(article(isLive=True, isBreaking=True))
    clock.advance(minutes=31)

    payload, _ = await politics.live()

    [item] = payload["data"]["articles"]
    assert item["isLive"] is True
    assert item["isBreaking"] is False


async def test_breaking_listing_hides_expired_topstory(politics, store, clock):
    from datetime import timedelta

    from sqlalchemy import update

    created = await politics.create(article(isBreaking=True, isTopstory=True))
    async with store.session() as session:
        await session.execute(
            update(ArticleRow)
            .where(ArticleRow.id == created["id"])
            .values(topstory_expires_at=clock.now - timedelta(minutes=1))
        )
        await session.commit()

    items, _ = await politics.breaking()

    assert [a["id"] for a in items] == [created["id"]]
    assert items[0]["isTopstory"] is False


async def test_top_stories_hide_expired_breaking(politics, clock):
    created = await politics.create(article(isBreaking=True, isTopstory=True))
    clock.advance(minutes=31)

    items, _ = await politics.top_stories()

    assert [a["id"] for a in items] == [created["id"]]
    assert items[0]["isBreaking"] is False


async def test_featured_articles_hide_expired_breaking(politics, sections, clock):
    from conftest import section

    elections = await sections.create(section())
    created = await politics.create(article(section_id=elections["id"], isBreaking=True))
    await sections.add_featured(elections["id"], created["id"])
    clock.advance(minutes=31)

    [item] = await sections.featured(elections["id"])

    assert item["id"] == created["id"]
    assert item["isBreaking"] is False
