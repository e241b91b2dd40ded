"""FastAPI application serving the cached booking data to display clients.

Read-through only: nothing here writes to the RevSport portal. Every
response is a JSON envelope {"success": bool, "data" | "error" | "message"}.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from revsport_board import __version__
from revsport_board.cache import BookingCache
from revsport_board.config import ScraperConfig, get_config
from revsport_board.errors import ScrapingError
from revsport_board.logging import get_logger
from revsport_board.service import BookingService
from revsport_board.session import SessionManager
from revsport_board.slots import build_board

log = get_logger(__name__)

router = APIRouter()


def get_cache(request: Request) -> BookingCache:
    return request.app.state.cache


def get_settings(request: Request) -> ScraperConfig:
    return request.app.state.config


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@router.get("/bookings", summary="Booking snapshot (cached)")
def read_bookings(
    refresh: bool = False,
    cache: BookingCache = Depends(get_cache),
):
    try:
        snapshot = cache.get_bookings(force_refresh=refresh)
    except ScrapingError as e:
        log.error("bookings_unavailable", error=str(e), error_type=type(e).__name__)
        return _error(503, f"Booking data unavailable: {e}")
    return {"success": True, "data": snapshot.model_dump(mode="json", by_alias=True)}


@router.get("/config", summary="Club display configuration")
def read_config(config: ScraperConfig = Depends(get_settings)):
    club = config.club.model_dump(mode="json", by_alias=True)
    return {
        "success": True,
        "data": {
            "club": {
                "name": club["name"],
                "shortName": club["shortName"],
                "branding": club["branding"],
                "sessions": club["sessions"],
            },
            "refreshInterval": config.refresh_interval,
        },
    }


@router.get("/board", summary="Multi-day booking grid bucketed by session")
def read_board(
    start: date | None = None,
    days: int | None = Query(default=None, ge=1, le=14),
    booked_only: bool = Query(default=True, alias="bookedOnly"),
    cache: BookingCache = Depends(get_cache),
    config: ScraperConfig = Depends(get_settings),
):
    try:
        snapshot = cache.get_bookings()
    except ScrapingError as e:
        log.error("board_unavailable", error=str(e), error_type=type(e).__name__)
        return _error(503, f"Booking data unavailable: {e}")

    board = build_board(
        snapshot,
        config.club.sessions,
        start=start or date.today(),
        days=days or config.board_days,
        booked_only=booked_only,
    )
    return {"success": True, "data": board.model_dump(mode="json", by_alias=True)}


@router.get("/health", summary="Liveness and cache status")
def read_health(cache: BookingCache = Depends(get_cache)):
    return {
        "success": True,
        "data": {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "cache": cache.get_cache_status().model_dump(mode="json", by_alias=True),
        },
    }


@router.post("/cache/clear", summary="Drop the cached snapshot")
def clear_cache(cache: BookingCache = Depends(get_cache)):
    cache.clear_cache()
    return {"success": True, "message": "Cache cleared"}


def create_app(
    config: ScraperConfig | None = None, cache: BookingCache | None = None
) -> FastAPI:
    """Build the API application.

    Args:
        config: Service configuration; defaults to get_config().
        cache: Pre-built cache (tests inject one). By default a cache backed
            by a live SessionManager + BookingService is created.
    """
    config = config or get_config()
    if cache is None:
        service = BookingService(SessionManager(config), config)
        cache = BookingCache(
            service.build_snapshot,
            ttl_seconds=config.cache_ttl_seconds,
            export_path=config.snapshot_export_path,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config.warm_cache_on_startup:
            cache.refresh_in_background()
        yield
        cache.shutdown()

    app = FastAPI(title="RevSport Booking Board", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.cache = cache
    app.include_router(router, prefix="/api/v1")

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(422, "Invalid request parameters")

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        log.exception("request_failed", path=request.url.path)
        return _error(500, "Internal server error")

    return app
