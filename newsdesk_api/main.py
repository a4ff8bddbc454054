"""FastAPI application."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from starlette.exceptions import HTTPException

from newsdesk.config.settings import get_settings
from newsdesk.errors import ContentError
from newsdesk_api.deps import close_deps, init_deps
from newsdesk_api.forms import field_errors
from newsdesk_api.responses import fail
from newsdesk_api.routers import articles, health, sections, stories, uploads

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_deps()
    yield
    await close_deps()


# ── Exception handlers ──────────────────────────────


async def _content_error(request: Request, exc: ContentError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=fail(exc.message, exc.errors))


async def _validation_error(request: Request, exc: RequestValidationError | ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content=fail("Validation failed", field_errors(exc)))


async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=fail(str(exc.detail)))


async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    message = "Something went wrong" if get_settings().is_production else str(exc)
    return JSONResponse(status_code=500, content={"status": "error", "message": message})


def create_app(*, manage_deps: bool = True) -> FastAPI:
    """Build the app. Tests pass ``manage_deps=False`` and install their own services."""
    app = FastAPI(
        title="Newsdesk API",
        description="Multi-site news content backend",
        version="0.1.0",
        lifespan=lifespan if manage_deps else None,
    )

    app.add_exception_handler(ContentError, _content_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(HTTPException, _http_error)
    app.add_exception_handler(Exception, _unhandled)

    app.include_router(health.router)
    app.include_router(health.router, prefix="/api")
    app.include_router(uploads.router, prefix="/api")
    app.include_router(articles.router, prefix="/api")
    app.include_router(sections.router, prefix="/api")
    # Catch-all /{site}/{collection}; must come last
    app.include_router(stories.router, prefix="/api")

    # Serve uploaded media files
    media_path = Path(get_settings().media_base_path)
    if media_path.is_dir():
        app.mount("/media", StaticFiles(directory=str(media_path)), name="media")
    return app


app = create_app()
