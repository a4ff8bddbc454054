from datetime import datetime, timedelta, timezone

import fakeredis
import httpx
import pytest

from newsdesk.cache import CacheLayer
from newsdesk.config.settings import Settings
from newsdesk.db.engine import ContentStore
from newsdesk.models import ArticleCreate, SectionCreate
from newsdesk.storage.blobs import LocalBlobStore
from newsdesk_api import deps
from newsdesk_api.main import create_app


class FakeClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 6, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
async def store(tmp_path):
    store = ContentStore(f"sqlite:///{tmp_path / 'newsdesk.db'}")
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    await client.flushall()
    yield client
    await client.flushall()


@pytest.fixture
async def cache(redis_client):
    layer = CacheLayer(client=redis_client)
    await layer.connect()
    return layer


@pytest.fixture
def blobs(tmp_path):
    return LocalBlobStore(str(tmp_path / "media"), "/media")


@pytest.fixture
def settings():
    return Settings(admin_token="", environment="test")


@pytest.fixture
def services(store, cache, blobs, settings, clock):
    return deps.build_services(store, cache, blobs, settings=settings, clock=clock)


@pytest.fixture
def politics(services):
    return services.articles["ghanapolitan"]


@pytest.fixture
def sports(services):
    return services.articles["ghanascore"]


@pytest.fixture
def sections(services):
    return services.sections["ghanapolitan"]


@pytest.fixture
async def client(services):
    deps.install(services)
    app = create_app(manage_deps=False)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    deps.install(None)


def article(**overrides) -> ArticleCreate:
    data = {
        "title": "Parliament approves budget",
        "description": "The house passed the 2026 budget after a long debate.",
        "content": "Members voted late on Thursday.",
        "category": "politics",
        "tags": ["budget", "parliament"],
    }
    data.update(overrides)
    return ArticleCreate.model_validate(data)


def section(**overrides) -> SectionCreate:
    data = {"section_name": "Elections", "section_code": "ELX"}
    data.update(overrides)
    return SectionCreate.model_validate(data)
