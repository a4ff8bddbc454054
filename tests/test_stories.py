from datetime import datetime

import pytest

from newsdesk.db.models import StoryRow
from newsdesk.errors import Conflict, NotFound
from newsdesk.models import StoryCreate, StoryUpdate
from newsdesk.storage.blobs import Upload


def story(**overrides) -> StoryCreate:
    data = {
        "title": "Why the cedi keeps sliding",
        "description": "An explainer on the currency.",
        "content": "Long read body",
        "category": "economy",
    }
    data.update(overrides)
    return StoryCreate.model_validate(data)


@pytest.fixture
def opinions(services):
    return services.stories[("ghanapolitan", "opinion")]


@pytest.fixture
def charts(services):
    return services.stories[("ghanapolitan", "chart")]


async def test_crud(opinions):
    created = await opinions.create(story())
    assert created["slug"] == "why-the-cedi-keeps-sliding"
    assert created["kind"] == "opinion"

    fetched, hit = await opinions.get("slug", created["slug"])
    assert (fetched["id"], hit) == (created["id"], False)
    assert (await opinions.get("slug", created["slug"]))[1] is True

    updated = await opinions.update(created["id"], StoryUpdate(description="Updated"))
    assert updated["description"] == "Updated"
    assert (await opinions.get("slug", created["slug"]))[0]["description"] == "Updated"

    await opinions.delete(created["id"])
    with pytest.raises(NotFound):
        await opinions.get("id", created["id"])


async def test_chart_data_round_trips(charts):
    created = await charts.create(story(data={"series": [1, 2, 3], "type": "bar"}))
    fetched, _ = await charts.get("id", created["id"])
    assert fetched["data"] == {"series": [1, 2, 3], "type": "bar"}


async def test_kinds_are_separate_namespaces(opinions, charts):
    created = await opinions.create(story())
    await charts.create(story())
    with pytest.raises(Conflict):
        await opinions.create(story())
    with pytest.raises(NotFound):
        await charts.get("id", created["id"])


async def test_list_and_search(opinions):
    await opinions.create(story())
    await opinions.create(story(title="Cocoa season outlook", category="agriculture"))

    listed, _ = await opinions.list(category="agriculture")
    assert [s["title"] for s in listed["data"]["opinions"]] == ["Cocoa season outlook"]
    found, _ = await opinions.search("cedi")
    assert found["total"] == 1


def test_sites_only_offer_their_kinds(services):
    assert ("ghanascore", "feature") in services.stories
    assert ("ghanascore", "opinion") not in services.stories


async def test_delete_removes_image_after_the_row(opinions, blobs, store, monkeypatch):
    image = Upload(data=b"\x89PNG\r\n\x1a\n" + b"0" * 64, mime_type="image/png", filename="o.png")
    created = await opinions.create(story(), image)
    seen = []
    original = blobs.delete

    async def delete(url):
        async with store.session() as session:
            seen.append(await session.get(StoryRow, created["id"]))
        await original(url)

    monkeypatch.setattr(blobs, "delete", delete)
    await opinions.delete(created["id"])

    assert seen == [None]


async def test_naive_published_at_is_stored_as_utc(opinions):
    created = await opinions.create(story())
    updated = await opinions.update(
        created["id"], StoryUpdate(published_at=datetime(2026, 3, 1, 8, 0))
    )
    assert updated["published_at"] == "2026-03-01T08:00:00+00:00"
