"""Shared dependencies for API endpoints."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta

from newsdesk.cache import CacheLayer
from newsdesk.clock import Clock, utcnow
from newsdesk.config.settings import Settings, get_settings
from newsdesk.db.engine import ContentStore
from newsdesk.errors import NotFound
from newsdesk.services.articles import ArticleService
from newsdesk.services.expiry import ExpiryReconciler
from newsdesk.services.section_counts import SectionCountSynchronizer
from newsdesk.services.sections import SectionService
from newsdesk.services.stories import StoryService
from newsdesk.sites import SITES, get_site
from newsdesk.storage.blobs import BlobStore, LocalBlobStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the routers need, built once per process."""

    store: ContentStore
    cache: CacheLayer
    blobs: BlobStore
    reconciler: ExpiryReconciler
    counts: SectionCountSynchronizer
    articles: dict[str, ArticleService] = field(default_factory=dict)
    sections: dict[str, SectionService] = field(default_factory=dict)
    stories: dict[tuple[str, str], StoryService] = field(default_factory=dict)
    admin_token: str = ""


def build_services(
    store: ContentStore,
    cache: CacheLayer,
    blobs: BlobStore,
    *,
    settings: Settings | None = None,
    clock: Clock = utcnow,
) -> Services:
    settings = settings or get_settings()
    reconciler = ExpiryReconciler(store, cache, clock)
    counts = SectionCountSynchronizer(store, cache)
    services = Services(
        store=store,
        cache=cache,
        blobs=blobs,
        reconciler=reconciler,
        counts=counts,
        admin_token=settings.admin_token,
    )
    for site in SITES.values():
        services.articles[site.key] = ArticleService(
            site, store, cache, blobs, reconciler,
            clock=clock,
            breaking_window=timedelta(minutes=settings.breaking_window_minutes),
            topstory_window=timedelta(hours=settings.topstory_window_hours),
        )
        if site.has_sections:
            services.sections[site.key] = SectionService(
                site, store, cache, blobs, counts, reconciler, clock=clock
            )
        for kind in site.story_kinds:
            services.stories[(site.key, kind)] = StoryService(
                site, kind, store, cache, blobs, clock=clock
            )
    return services


_services: Services | None = None
_scheduler_task: asyncio.Task | None = None


def install(services: Services | None) -> None:
    """Swap the process-wide services (tests install their own)."""
    global _services
    _services = services


async def init_deps() -> None:
    """Initialize shared dependencies (called on app startup)."""
    global _scheduler_task
    settings = get_settings()
    store = ContentStore(settings.db_url)
    await store.connect()
    cache = CacheLayer(settings.redis_url)
    # A cold cache is fine; CacheLayer retries on the next access
    await cache.connect()
    blobs = LocalBlobStore(settings.media_base_path, settings.media_public_url)
    install(build_services(store, cache, blobs, settings=settings))

    # Start background expiry reconciliation
    from newsdesk_api.scheduler import scheduler_loop

    _scheduler_task = asyncio.create_task(
        scheduler_loop(get_services(), settings.reconcile_interval_seconds)
    )


async def close_deps() -> None:
    """Close shared dependencies (called on app shutdown)."""
    global _scheduler_task
    if _scheduler_task:
        _scheduler_task.cancel()
        _scheduler_task = None
    if _services is not None:
        await _services.cache.close()
        await _services.store.close()
    install(None)


def get_services() -> Services:
    assert _services is not None, "Services not initialized, call init_deps() first"
    return _services


# ── Per-request lookups (FastAPI path dependencies) ──


def get_articles(site: str) -> ArticleService:
    get_site(site)
    return get_services().articles[site]


def get_sections(site: str) -> SectionService:
    service = get_services().sections.get(get_site(site).key)
    if service is None:
        raise NotFound(f"{SITES[site].name} has no sections")
    return service


def get_stories(site: str, collection: str) -> StoryService:
    get_site(site)
    kind = collection[:-1] if collection.endswith("s") else collection
    service = get_services().stories.get((site, kind))
    if service is None:
        raise NotFound(f"Unknown collection '{collection}' on {SITES[site].name}")
    return service
