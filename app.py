#  app.py
import logging
import re
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Path, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from httpx import AsyncClient
from starlette.exceptions import HTTPException as StarletteHTTPException

from browser import BrowserSession, close_browser_session, get_browser_session
from cache import MemoryCache, get_cache
from config import settings
from embed import generate_clean_player, generate_error_page
from errors import NotFoundError, ScrapeError
from http_client import get_http_client
from models import (
    AvailabilityResponse,
    BatchAvailabilityRequest,
    CategoriesResponse,
    CategoryResponse,
    ContentDetail,
    ContentType,
    DayScheduleResponse,
    EpisodeStreaming,
    ErrorResponse,
    HomeResponse,
    RandomResponse,
    ScheduleResponse,
    SearchResponse,
    ServerLink,
    SourceInfo,
    SuggestionsResponse,
)
from scraper import (
    LANGUAGE_CATEGORIES,
    MOVIES_CATEGORY,
    SERIES_CATEGORY,
    WEEKDAYS,
    check_batch_availability,
    scrape_anime_details,
    scrape_by_language,
    scrape_categories,
    scrape_category,
    scrape_home,
    scrape_movies,
    scrape_random,
    scrape_search,
    scrape_search_suggestions,
    scrape_series,
)
from streaming import resolve_embed_source, scrape_episode_streaming, scrape_server_link

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} scraping {settings.BASE_URL}")
    yield
    await close_browser_session()


# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="API to scrape anime series, movies and cartoons from toonstream.one, with an ad-free embeddable player.",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Content type aliases accepted by the ?type= query parameter
TYPE_ALIASES = {
    "series": ContentType.SERIES,
    "movie": ContentType.MOVIE,
    "movies": ContentType.MOVIE,
    "cartoon": ContentType.CARTOON,
    "cartoons": ContentType.CARTOON,
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid parameters"},
    404: {"model": ErrorResponse, "description": "Content not found"},
    500: {"model": ErrorResponse, "description": "Internal server error"},
    502: {"model": ErrorResponse, "description": "Failed to fetch data from source"},
    503: {"model": ErrorResponse, "description": "Source timed out or unreachable"},
}


def error_json(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(),
    )


@app.exception_handler(ScrapeError)
async def scrape_error_handler(request: Request, exc: ScrapeError):
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return error_json(exc.status_code, str(exc))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_json(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_json(500, "Internal server error")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "Invalid request")
    return error_json(400, f"{location}: {message}" if location else message)


def clean_slug(value: str, label: str) -> str:
    slug = re.sub(r'\s+', '-', value.strip().lower())
    slug = re.sub(r'[^\w-]', '', slug)
    if not slug:
        raise HTTPException(status_code=400, detail=f"{label} cannot be empty or invalid")
    return slug


def parse_type_hint(value: Optional[str]) -> Optional[ContentType]:
    if not value or value.strip().lower() == "auto":
        return None
    type_hint = TYPE_ALIASES.get(value.strip().lower())
    if type_hint is None:
        raise HTTPException(status_code=400, detail="Type parameter must be 'series', 'movie', 'cartoon' or 'auto'")
    return type_hint


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    return {
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "endpoints": {
            "home": "/api/home",
            "search": "/api/search?keyword={keyword}&page={page}",
            "suggestions": "/api/search/suggestions?keyword={keyword}",
            "anime": {
                "detail": "/api/anime/{id}?type={series|movie|cartoon}",
                "batch_availability": "POST /api/anime/batch-availability",
            },
            "episode": {
                "streaming": "/api/episode/{id}",
                "server": "/api/episode/{id}/servers/{serverId}",
            },
            "categories": {
                "list": "/api/categories",
                "category": "/api/category/{name}?page={page}",
                "language": "/api/category/language/{lang}?page={page}",
                "movies": "/api/category/type/movies?page={page}",
                "series": "/api/category/type/series?page={page}",
            },
            "random": ["/api/random/movie", "/api/random/series"],
            "schedule": ["/api/schedule", "/api/schedule/{day}"],
            "embed": "/embed/{id}?type={series|movie|cartoon|auto}",
        },
        "documentation": "/docs",
    }


@app.get(
    "/api/home",
    response_model=HomeResponse,
    responses=ERROR_RESPONSES,
    summary="Get home page",
    description="Latest series, latest movies, trending items and the weekly release schedule.",
)
async def get_home(
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
):
    return await scrape_home(client, cache)


@app.get(
    "/api/search",
    response_model=SearchResponse,
    responses=ERROR_RESPONSES,
    summary="Search content",
    description="Search series, movies and cartoons by keyword. Example: `?keyword=naruto&page=2`",
)
async def search(
    keyword: str = Query(..., description="Search keyword"),
    page: int = Query(1, ge=1, description="Results page"),
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
):
    keyword = keyword.strip()
    if not keyword:
        raise HTTPException(status_code=400, detail="Keyword cannot be empty")
    return await scrape_search(keyword, page, client, cache)


@app.get(
    "/api/search/suggestions",
    response_model=SuggestionsResponse,
    responses=ERROR_RESPONSES,
    summary="Search suggestions",
    description="Top search matches for autocomplete.",
)
async def search_suggestions(
    keyword: str = Query(..., description="Search keyword"),
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
):
    keyword = keyword.strip()
    if not keyword:
        raise HTTPException(status_code=400, detail="Keyword cannot be empty")
    return await scrape_search_suggestions(keyword, client, cache)


@app.post(
    "/api/anime/batch-availability",
    response_model=AvailabilityResponse,
    responses=ERROR_RESPONSES,
    summary="Check availability of several ids",
    description="Scrape each id (up to 50) and report whether it resolves, with episode count and Hindi availability.",
)
async def batch_availability(
    body: BatchAvailabilityRequest,
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
):
    ids = [clean_slug(anime_id, "Id") for anime_id in body.ids]
    return await check_batch_availability(ids, client, cache)


@app.get(
    "/api/anime/{id}",
    response_model=ContentDetail,
    responses=ERROR_RESPONSES,
    summary="Get content details",
    description="Series, movie or cartoon details with seasons and episodes. Example: `/api/anime/naruto-shippuden?type=series`",
)
async def get_anime(
    id: str = Path(..., description="Content slug"),
    type: Optional[str] = Query(None, description="series, movie, cartoon or auto"),
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
):
    anime_id = clean_slug(id, "Id")
    return await scrape_anime_details(anime_id, client, cache, parse_type_hint(type))


@app.get(
    "/api/episode/{id}",
    response_model=EpisodeStreaming,
    responses=ERROR_RESPONSES,
    summary="Get episode streaming sources",
    description="Streaming sources, downloads, languages and servers. Example: `/api/episode/naruto-shippuden-1x1`",
)
async def get_episode(
    id: str = Path(..., description="Episode slug"),
    type: Optional[str] = Query(None, description="series, movie, cartoon or auto"),
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
    browser: Optional[BrowserSession] = Depends(get_browser_session),
):
    episode_id = clean_slug(id, "Episode id")
    return await scrape_episode_streaming(episode_id, client, cache, parse_type_hint(type), browser)


@app.get(
    "/api/episode/{id}/servers/{server_id}",
    response_model=ServerLink,
    responses=ERROR_RESPONSES,
    summary="Get sources for one server",
)
async def get_episode_server(
    id: str = Path(..., description="Episode slug"),
    server_id: str = Path(..., description="Server id as listed by /api/episode/{id}"),
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
):
    episode_id = clean_slug(id, "Episode id")
    return await scrape_server_link(episode_id, clean_slug(server_id, "Server id"), client, cache)


@app.get(
    "/api/categories",
    response_model=CategoriesResponse,
    responses=ERROR_RESPONSES,
    summary="List categories",
)
async def get_categories(
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
):
    return await scrape_categories(client, cache)


@app.get(
    "/api/category/language/{lang}",
    response_model=CategoryResponse,
    responses=ERROR_RESPONSES,
    summary="Browse by audio language",
    description=f"Supported languages: {', '.join(LANGUAGE_CATEGORIES)}",
)
async def get_category_by_language(
    lang: str = Path(..., description="Audio language, e.g. hindi"),
    page: int = Query(1, ge=1, description="Listing page"),
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
):
    lang = clean_slug(lang, "Language")
    if lang not in LANGUAGE_CATEGORIES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid language. Supported languages: {', '.join(LANGUAGE_CATEGORIES)}",
        )
    return await scrape_by_language(lang, page, client, cache)


@app.get(
    "/api/category/type/movies",
    response_model=CategoryResponse,
    responses=ERROR_RESPONSES,
    summary="Browse movies",
)
async def get_movies(
    page: int = Query(1, ge=1, description="Listing page"),
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
):
    return await scrape_movies(page, client, cache)


@app.get(
    "/api/category/type/series",
    response_model=CategoryResponse,
    responses=ERROR_RESPONSES,
    summary="Browse series",
)
async def get_series(
    page: int = Query(1, ge=1, description="Listing page"),
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
):
    return await scrape_series(page, client, cache)


@app.get(
    "/api/category/{name}",
    response_model=CategoryResponse,
    responses=ERROR_RESPONSES,
    summary="Browse a category",
    description="Example: `/api/category/action?page=2`",
)
async def get_category(
    name: str = Path(..., description="Category slug"),
    page: int = Query(1, ge=1, description="Listing page"),
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
):
    return await scrape_category(clean_slug(name, "Category"), page, client, cache)


@app.get(
    "/api/random/movie",
    response_model=RandomResponse,
    responses=ERROR_RESPONSES,
    summary="Random movie",
)
async def get_random_movie(
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
):
    card = await scrape_random(MOVIES_CATEGORY, client, cache)
    return RandomResponse(**card.model_dump())


@app.get(
    "/api/random/series",
    response_model=RandomResponse,
    responses=ERROR_RESPONSES,
    summary="Random series",
)
async def get_random_series(
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
):
    card = await scrape_random(SERIES_CATEGORY, client, cache)
    return RandomResponse(**card.model_dump())


@app.get(
    "/api/schedule",
    response_model=ScheduleResponse,
    responses=ERROR_RESPONSES,
    summary="Weekly release schedule",
)
async def get_schedule(
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
):
    home = await scrape_home(client, cache)
    return ScheduleResponse(schedule=home.schedule)


@app.get(
    "/api/schedule/{day}",
    response_model=DayScheduleResponse,
    responses=ERROR_RESPONSES,
    summary="Release schedule for one day",
)
async def get_schedule_day(
    day: str = Path(..., description="Weekday, e.g. monday"),
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
):
    day = day.strip().lower()
    if day not in WEEKDAYS:
        raise HTTPException(status_code=400, detail=f"Invalid day. Use one of: {', '.join(WEEKDAYS)}")
    home = await scrape_home(client, cache)
    return DayScheduleResponse(day=day, results=home.schedule.get(day, []))


@app.get(
    "/api/source/{id}",
    response_model=SourceInfo,
    summary="Embed pointer",
    description="Points clients at the embeddable player for an episode.",
)
async def get_source(id: str = Path(..., description="Episode slug")):
    episode_id = clean_slug(id, "Episode id")
    return SourceInfo(message="Use /embed/{id} for video playback", embed_url=f"/embed/{episode_id}")


@app.get(
    "/embed/{id}",
    response_class=HTMLResponse,
    summary="Ad-free embeddable player",
    description="Always answers with HTML: the player shell, or a styled error page.",
)
async def embed_player(
    id: str = Path(..., description="Episode or movie slug"),
    type: Optional[str] = Query(None, description="series, movie, cartoon or auto"),
    client: AsyncClient = Depends(get_http_client),
    cache: MemoryCache = Depends(get_cache),
    browser: Optional[BrowserSession] = Depends(get_browser_session),
):
    episode_id = re.sub(r'[^\w-]', '', id.strip().lower())
    type_hint = TYPE_ALIASES.get((type or "").strip().lower())
    if not episode_id:
        return HTMLResponse(generate_error_page(NotFoundError(id)))
    try:
        iframe_src = await resolve_embed_source(episode_id, client, cache, type_hint, browser)
    except Exception as e:
        logger.error(f"Embed error for '{id}': {e}")
        return HTMLResponse(generate_error_page(e))
    return HTMLResponse(generate_clean_player(iframe_src))
