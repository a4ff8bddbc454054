"""Background scheduler: periodically expires flags and sections.

Reads reconcile on their own; this loop is the backstop for flags nobody
reads and for section expiry, which has no read-time check.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from newsdesk_api.deps import Services

logger = logging.getLogger(__name__)


async def scheduler_loop(services: "Services", interval_seconds: int) -> None:
    """Run one reconciliation pass every ``interval_seconds``."""
    logger.info("Scheduler started (check every %ds)", interval_seconds)
    while True:
        try:
            await run_once(services)
        except Exception:
            logger.warning("Scheduler tick failed", exc_info=True)
        await asyncio.sleep(interval_seconds)


async def run_once(services: "Services") -> dict:
    cleared = await services.reconciler.reconcile_all()
    deactivated = {
        site: await sections.deactivate_expired() for site, sections in services.sections.items()
    }
    return {"flags": cleared, "sections": deactivated}
