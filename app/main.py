"""Entry point for the FastAPI-powered catalog API."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import Settings, settings
from .database import Database
from .errors import (
    CatalogError,
    FetchError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .models import EntryKind, SessionContext, ThreadKey
from .services.backend import CatalogBackend
from .services.catalog import ALL_GENRES, CatalogAggregator
from .services.comments import ThreadManager
from .services.featured import FeaturedRotator
from .services.pages import FilmDetailPage, FilmsPage, HomePage, SeriesDetailPage
from .services.playback import build_share_payload, start_playback
from .services.rest_backend import RestCatalogBackend
from .services.search import SearchEngine
from .services.sql_backend import SqlCatalogBackend

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"
PATH_KINDS: dict[str, EntryKind] = {"series": "series", "films": "film"}

app: FastAPI


class CommentPayload(BaseModel):
    content: str = ""


class PlayPayload(BaseModel):
    episode_number: int | None = Field(default=1, ge=1)


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    database: Database | None = None
    if settings.backend == "rest":
        http_client = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=str(settings.rest_api_url),
                timeout=httpx.Timeout(15.0, connect=5.0),
            )
        )
        backend: CatalogBackend = RestCatalogBackend(settings, http_client)
    else:
        database = Database(settings.database_url)
        await database.create_all()
        backend = SqlCatalogBackend(database.session_factory)

    logger.info("Catalog backend: %s", settings.backend)
    fastapi_app.state.backend = backend
    fastapi_app.state.settings = settings
    fastapi_app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        if database is not None:
            await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Catalog browsing, playback links and discussion threads",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_settings_for(app: FastAPI) -> Settings:
    configured = getattr(app.state, "settings", None)
    return configured if isinstance(configured, Settings) else settings


def get_backend(app: FastAPI, session: SessionContext | None = None) -> CatalogBackend:
    backend = getattr(app.state, "backend", None)
    if backend is None:
        raise RuntimeError("Catalog backend not initialised")
    if session is not None and isinstance(backend, RestCatalogBackend):
        return backend.with_access_token(session.access_token)
    return backend


def session_from_request(request: Request) -> SessionContext:
    """Build the visitor context from headers set by the auth layer."""

    user_id = (request.headers.get(USER_HEADER) or "").strip() or None
    authorization = request.headers.get("Authorization") or ""
    token = None
    if authorization.lower().startswith("bearer "):
        token = authorization[7:].strip() or None
    return SessionContext(user_id=user_id, access_token=token)


def http_error(exc: CatalogError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, FetchError):
        return HTTPException(
            status_code=502, detail={"error": str(exc), "retryable": True}
        )
    return HTTPException(status_code=500, detail=str(exc))


def _resolve_kind(segment: str) -> EntryKind:
    kind = PATH_KINDS.get(segment)
    if kind is None:
        raise HTTPException(status_code=404, detail="Unknown catalog section")
    return kind


def register_routes(fastapi_app: FastAPI) -> None:
    def _thread(request: Request, segment: str, entry_id: str) -> tuple[ThreadManager, SessionContext]:
        kind = _resolve_kind(segment)
        session = session_from_request(request)
        config = get_settings_for(fastapi_app)
        manager = ThreadManager(
            get_backend(fastapi_app, session),
            ThreadKey.for_entry(kind, entry_id),
            concurrency=config.lookup_concurrency,
            page_size=config.comment_page_size,
        )
        return manager, session

    def _thread_payload(
        manager: ThreadManager, session: SessionContext, page: int = 1
    ) -> dict[str, Any]:
        return {
            "page": page,
            "page_count": manager.page_count,
            "total": len(manager.comments),
            "comments": [
                {
                    **comment.model_dump(mode="json"),
                    "can_delete": manager.can_delete(comment, session.user_id),
                }
                for comment in manager.page(page)
            ],
        }

    @fastapi_app.get("/health")
    async def healthcheck() -> dict[str, str]:
        database = getattr(fastapi_app.state, "database", None)
        if isinstance(database, Database) and not await database.ping():
            return {"status": "degraded", "database": "unavailable"}
        return {"status": "ok"}

    @fastapi_app.get("/home")
    async def home(genre: str = ALL_GENRES) -> JSONResponse:
        backend = get_backend(fastapi_app)
        config = get_settings_for(fastapi_app)
        aggregator = CatalogAggregator(backend, concurrency=config.lookup_concurrency)
        page = HomePage(aggregator, limit=config.catalog_limit)
        rotator = FeaturedRotator(
            backend,
            per_kind=config.featured_per_kind,
            interval_seconds=config.featured_rotation_seconds,
        )
        await page.load()
        await rotator.load()
        page.select_genre(genre)
        if page.error and not (page.series or page.films):
            raise http_error(page.error)
        payload = page.to_payload()
        payload["featured"] = rotator.to_payload()
        return JSONResponse(payload)

    @fastapi_app.get("/search")
    async def search(q: str = "") -> JSONResponse:
        config = get_settings_for(fastapi_app)
        engine = SearchEngine(
            get_backend(fastapi_app),
            debounce_seconds=config.search_debounce_seconds,
            limit=config.search_limit,
        )
        try:
            results = await engine.search(q)
        except CatalogError as exc:
            raise http_error(exc) from exc
        return JSONResponse(
            {
                "query": q,
                "results": [entry.to_card() for entry in results],
                "debounce_ms": config.search_debounce_ms,
            }
        )

    @fastapi_app.get("/films")
    async def films(q: str = "") -> JSONResponse:
        page = FilmsPage(get_backend(fastapi_app))
        await page.load()
        if page.error is not None and not page.films:
            raise http_error(page.error)
        page.filter(q)
        return JSONResponse(page.to_payload())

    @fastapi_app.get("/series/{entry_id}")
    async def series_detail(
        entry_id: str, language: str | None = None, season: int | None = None
    ) -> JSONResponse:
        backend = get_backend(fastapi_app)
        config = get_settings_for(fastapi_app)
        page = SeriesDetailPage(
            backend,
            CatalogAggregator(backend, concurrency=config.lookup_concurrency),
            related_limit=config.related_limit,
        )
        await page.load(entry_id)
        if page.not_found:
            raise HTTPException(status_code=404, detail="Series not found")
        if page.error is not None:
            raise http_error(page.error)
        return JSONResponse(page.to_payload(language, season))

    @fastapi_app.get("/films/{entry_id}")
    async def film_detail(entry_id: str, language: str | None = None) -> JSONResponse:
        backend = get_backend(fastapi_app)
        config = get_settings_for(fastapi_app)
        page = FilmDetailPage(
            backend,
            CatalogAggregator(backend, concurrency=config.lookup_concurrency),
            related_limit=config.related_limit,
        )
        await page.load(entry_id)
        if page.not_found:
            raise HTTPException(status_code=404, detail="Film not found")
        if page.error is not None:
            raise http_error(page.error)
        if language:
            try:
                page.select_language(language)
            except KeyError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse(page.to_payload())

    @fastapi_app.get("/{segment}/{entry_id}/comments")
    async def list_comments(
        request: Request, segment: str, entry_id: str, page: int = 1
    ) -> JSONResponse:
        manager, session = _thread(request, segment, entry_id)
        try:
            await manager.fetch()
        except CatalogError as exc:
            raise http_error(exc) from exc
        return JSONResponse(_thread_payload(manager, session, page))

    @fastapi_app.post("/{segment}/{entry_id}/comments", status_code=201)
    async def post_comment(
        request: Request, segment: str, entry_id: str, payload: CommentPayload
    ) -> JSONResponse:
        manager, session = _thread(request, segment, entry_id)
        try:
            await manager.post(payload.content, session.user_id)
        except CatalogError as exc:
            raise http_error(exc) from exc
        return JSONResponse(_thread_payload(manager, session), status_code=201)

    @fastapi_app.delete("/{segment}/{entry_id}/comments/{comment_id}")
    async def delete_comment(
        request: Request, segment: str, entry_id: str, comment_id: str
    ) -> JSONResponse:
        manager, session = _thread(request, segment, entry_id)
        if not session.is_authenticated:
            raise HTTPException(status_code=401, detail="Sign in to delete comments")
        try:
            await manager.delete(comment_id, session.user_id)
        except CatalogError as exc:
            raise http_error(exc) from exc
        return JSONResponse(_thread_payload(manager, session))

    @fastapi_app.post("/{segment}/{entry_id}/play")
    async def play(
        request: Request,
        segment: str,
        entry_id: str,
        payload: PlayPayload | None = None,
    ) -> dict[str, str]:
        kind = _resolve_kind(segment)
        session = session_from_request(request)
        episode_number = payload.episode_number if payload else 1
        try:
            await start_playback(
                get_backend(fastapi_app, session),
                session,
                kind,
                entry_id,
                episode_number=episode_number,
            )
        except ValidationError as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc
        except CatalogError as exc:
            raise http_error(exc) from exc
        return {"status": "playing"}

    @fastapi_app.get("/{segment}/{entry_id}/share")
    async def share(segment: str, entry_id: str) -> dict[str, str]:
        kind = _resolve_kind(segment)
        config = get_settings_for(fastapi_app)
        try:
            entry = await get_backend(fastapi_app).get_entry(kind, entry_id)
        except CatalogError as exc:
            raise http_error(exc) from exc
        return build_share_payload(
            entry, str(config.public_base_url), app_name=config.app_name
        ).to_payload()


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
