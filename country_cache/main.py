import logging
import random
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from country_cache import database
from country_cache.crud import CountryStore, StatusTracker
from country_cache.database import Base, make_session_factory
from country_cache.exceptions import CountryCacheError, SourceUnavailable
from country_cache.logging import init_logging, RequestLoggingMiddleware, setup_query_logging
from country_cache.routes import countries, status
from country_cache.services.materializer import Renderer
from country_cache.services.pipeline import Fetcher, RefreshPipeline

logger = logging.getLogger("country_cache")


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=app.state.engine)
    logger.info("Country cache ready")
    try:
        yield
    finally:
        # Let in-flight summary renders finish before the loop goes away
        await app.state.pipeline.drain()


def create_app(
    engine: Optional[Engine] = None,
    fetch: Optional[Fetcher] = None,
    renderer: Optional[Renderer] = None,
    rng: Optional[random.Random] = None,
) -> FastAPI:
    """Build the API with its collaborators wired onto app.state.

    Tests pass an in-memory engine and fake fetch/renderer callables.
    """
    engine = engine or database.engine
    session_factory = make_session_factory(engine)
    store = CountryStore(session_factory)
    status_tracker = StatusTracker(session_factory)

    app = FastAPI(
        title="Country Cache API",
        version="1.0.0",
        description=(
            "Locally cached country reference data with currencies, exchange rates "
            "and a simple estimated GDP.\n\n"
            "Features:\n"
            "- On-demand refresh from Rest Countries and Open ER API\n"
            "- Filter by region and currency\n"
            "- Sort by name, population, or estimated GDP\n"
            "- Cache status and a generated summary image"
        ),
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.store = store
    app.state.status_tracker = status_tracker
    app.state.pipeline = RefreshPipeline(store, status_tracker, fetch=fetch, renderer=renderer, rng=rng)

    app.add_middleware(RequestLoggingMiddleware)
    setup_query_logging(engine)

    app.include_router(countries.router, prefix="/countries", tags=["Countries"])
    app.include_router(status.router, prefix="/status", tags=["Status"])

    @app.get("/")
    def root():
        return {"message": "Country Cache API running. Visit /docs for API documentation."}

    register_exception_handlers(app)
    return app


# -------------------------------
# Unified error response handlers
# -------------------------------
def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CountryCacheError)
    async def country_cache_exception_handler(request: Request, exc: CountryCacheError):
        log = logger.warning if exc.status_code < 500 or isinstance(exc, SourceUnavailable) else logger.error
        log(
            "%s: %s %s -> %s | %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc.status_code,
            exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger.warning(
            "HTTPException: %s %s -> %s | detail=%s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.detail,
        )
        body = {"error": exc.detail if isinstance(exc.detail, str) else "Error"}
        if isinstance(exc.detail, dict):
            body = {
                "error": exc.detail.get("error") or "Error",
                "details": exc.detail.get("details"),
            }
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.error(
            "ValidationError: %s %s | errors=%s",
            request.method,
            request.url.path,
            exc.errors(),
        )
        return JSONResponse(
            status_code=400,
            content={
                "error": "Validation failed",
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(
            "Unhandled exception: %s %s",
            request.method,
            request.url.path,
        )
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


init_logging()
app = create_app()
