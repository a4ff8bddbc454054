import json

PNG = b"\x89PNG\r\n\x1a\n" + b"0" * 64


def article_form(**overrides):
    data = {
        "title": "Parliament approves budget",
        "description": "The house passed the budget.",
        "content": "Members voted late on Thursday.",
        "category": "politics",
        "tags": "budget, parliament",
    }
    data.update(overrides)
    return data


async def test_health(client):
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_create_and_fetch_with_cache_flag(client):
    response = await client.post("/api/ghanascore/articles", json=article_form(title="Derby day"))
    assert response.status_code == 201
    created = response.json()["data"]["article"]
    assert created["tags"] == ["budget", "parliament"]

    first = await client.get(f"/api/ghanascore/articles/{created['id']}")
    second = await client.get(f"/api/ghanascore/articles/{created['id']}")
    assert first.json()["cached"] is False
    assert second.json()["cached"] is True
    assert second.json()["data"]["article"]["slug"] == "derby-day"


async def test_multipart_create_with_image_and_live_blocks(client):
    blocks = [{"content_title": "a", "content_description": "b", "content_detail": "c"}]
    response = await client.post(
        "/api/ghanapolitan/articles",
        data=article_form(isLive="true", content=json.dumps(blocks)),
        files={"image": ("lead.png", PNG, "image/png")},
    )
    assert response.status_code == 201
    created = response.json()["data"]["article"]
    assert created["isLive"] is True
    assert created["content"][0]["content_title"] == "a"
    assert created["image_url"].startswith("/media/articles/")


async def test_validation_errors_are_400(client):
    response = await client.post("/api/ghanascore/articles", json={"title": "No body"})
    assert response.status_code == 400
    body = response.json()
    assert body["status"] == "fail"
    assert {e["field"] for e in body["errors"]} >= {"description", "content", "category"}


async def test_malformed_id_is_400(client):
    response = await client.get("/api/ghanascore/articles/xyz")
    assert response.status_code == 400
    assert response.json() == {"status": "fail", "message": "Invalid article ID format"}


async def test_unknown_site_is_404(client):
    response = await client.get("/api/nowhere/articles")
    assert response.status_code == 404


async def test_duplicate_slug_is_409(client):
    await client.post("/api/ghanascore/articles", json=article_form(title="Twice"))
    response = await client.post("/api/ghanascore/articles", json=article_form(title="Twice"))
    assert response.status_code == 409


async def test_status_endpoint_vocabulary(client):
    assert (await client.get("/api/ghanapolitan/articles/status/topstory")).status_code == 200
    assert (await client.get("/api/ghanapolitan/articles/status/topstories")).status_code == 400


async def test_breaking_expires_end_to_end(client, clock):
    await client.post("/api/ghanapolitan/articles", json=article_form(isBreaking=True))
    response = await client.get("/api/ghanapolitan/articles/breaking")
    assert response.json()["results"] == 1

    clock.advance(minutes=31)
    response = await client.get("/api/ghanapolitan/articles/breaking")
    assert response.json()["results"] == 0
    assert response.json()["cached"] is False


async def test_section_count_end_to_end(client):
    response = await client.post(
        "/api/ghanapolitan/sections", json={"section_name": "Elections", "section_code": "ELX"}
    )
    assert response.status_code == 201
    section_id = response.json()["data"]["section"]["id"]

    response = await client.post(
        "/api/ghanapolitan/articles", json=article_form(section_id=section_id)
    )
    article_id = response.json()["data"]["article"]["id"]

    response = await client.get("/api/ghanapolitan/sections/slug/elections")
    assert response.json()["data"]["section"]["articles_count"] == 1

    assert (await client.delete(f"/api/ghanapolitan/articles/{article_id}")).status_code == 200
    response = await client.get("/api/ghanapolitan/sections/slug/elections")
    assert response.json()["data"]["section"]["articles_count"] == 0


async def test_sections_are_politics_only(client):
    response = await client.get("/api/ghanascore/sections")
    assert response.status_code == 404


async def test_comment_votes_use_client_address(client):
    response = await client.post("/api/ghanapolitan/articles", json=article_form())
    slug = response.json()["data"]["article"]["slug"]
    response = await client.post(
        f"/api/ghanapolitan/articles/slug/{slug}/comments",
        json={"username": "kofi", "content": "Well argued"},
    )
    assert response.status_code == 201
    comment_id = response.json()["data"]["comment"]["id"]

    url = f"/api/ghanapolitan/articles/slug/{slug}/comments/{comment_id}/vote"
    await client.post(f"{url}/up", headers={"X-Forwarded-For": "10.0.0.1"})
    await client.post(f"{url}/up", headers={"X-Forwarded-For": "10.0.0.2, 172.16.0.1"})
    response = await client.post(f"{url}/up", headers={"X-Forwarded-For": "10.0.0.1"})

    comment = response.json()["data"]["comment"]
    assert comment["upvotes"] == 1
    assert comment["upvotedBy"] == ["10.0.0.2"]


async def test_stories_collection(client):
    response = await client.post(
        "/api/ghanapolitan/charts",
        json={
            "title": "Inflation 2025",
            "description": "Monthly CPI",
            "category": "economy",
            "data": {"series": [23.1, 22.4]},
        },
    )
    assert response.status_code == 201
    assert response.json()["data"]["chart"]["data"] == {"series": [23.1, 22.4]}

    response = await client.get("/api/ghanapolitan/charts")
    assert response.json()["total"] == 1
    assert (await client.get("/api/ghanascore/charts")).status_code == 404



async def test_editor_image_upload(client, tmp_path):
    response = await client.post(
        "/api/upload/image", files={"image": ("inline.png", PNG, "image/png")}
    )
    assert response.status_code == 200
    url = response.json()["url"]
    assert url.startswith("/media/editor-uploads/")
    assert (tmp_path / "media" / url.removeprefix("/media/")).exists()

    response = await client.post("/api/upload/image", data={"caption": "nothing attached"})
    assert response.status_code == 400
    assert response.json()["message"] == "No file uploaded"


async def test_label_recent_and_featured_routes(client):
    await client.post(
        "/api/afrobeatsrep/articles", json=article_form(title="New single", label="Mavin")
    )

    response = await client.get("/api/afrobeatsrep/articles/label/Mavin")
    assert response.status_code == 200
    assert response.json()["total"] == 1
    assert (await client.get("/api/afrobeatsrep/articles/recent")).json()["results"] == 1
    assert (await client.get("/api/afrobeatsrep/articles/featured")).json()["results"] == 1


async def test_recount_route(client):
    await client.post(
        "/api/ghanapolitan/sections", json={"section_name": "Elections", "section_code": "ELX"}
    )

    response = await client.post("/api/ghanapolitan/sections/slug/elections/recount")
    assert response.status_code == 200
    assert response.json()["data"] == {"section_slug": "elections", "articles_count": 0}
    response = await client.post("/api/ghanapolitan/sections/slug/missing/recount")
    assert response.status_code == 404
