# streaming.py
"""
Episode streaming resolution for toonstream.one.

Two strategies:
- scrape_episode_streaming: fetch the episode page (probing the URL shapes an
  id can live under) and extract iframe/video sources, downloads, languages
  and servers from the static HTML.
- resolve_embed_source: turn those sources into one playable iframe URL for
  the embed player. Up to EMBED_MAX_CANDIDATES sources are tried at once;
  "trembed" player pages need a second fetch to reach the real iframe. The
  first candidate to produce a usable URL wins.
"""
import asyncio
import logging
import re
from html import unescape
from typing import Awaitable, List, Optional, Sequence, Tuple, TypeVar

from bs4 import BeautifulSoup, Tag
from httpx import AsyncClient

from cache import MemoryCache
from config import settings
from errors import (
    AggregateSourceError,
    ExtractionEmptyError,
    NotFoundError,
    ScrapeError,
)
from extractors import (
    EPISODE_SLUG_PATTERN,
    QUALITY_PATTERN,
    clean_text,
    detect_languages,
    first_value,
    is_episode_slug,
    normalize_url,
    page_text,
    parse_season_episode,
    slugify,
    text_of,
)
from http_client import fetch_page
from models import (
    ContentType,
    Download,
    EpisodeStreaming,
    Server,
    ServerLink,
    SourceType,
    StreamingSource,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TITLE_STRATEGIES = [text_of("h1"), text_of(".entry-title"), text_of(".title")]
IFRAME_ATTRS = ("data-src", "data-lazy-src", "src")
DOWNLOAD_SELECTOR = 'a[href*="download"], .download-link a, a[download], [class*="download"] a'
LANGUAGE_SELECTOR = '.language-selector option, .audio-track, [class*="language"]'
SERVER_SELECTOR = '.server-list button, .player-option, [data-server], [class*="server"]'
MIN_DOWNLOAD_HREF_LENGTH = 10
MAX_LANGUAGE_LENGTH = 20
MAX_SERVER_NAME_LENGTH = 50

IFRAME_TAG_PATTERN = re.compile(r'<iframe\b[^>]*>', re.IGNORECASE)
IFRAME_SRC_PATTERN = re.compile(
    r'(?<![\w-])(data-src|src)\s*=\s*(?:"([^"]*)"|\'([^\']*)\'|([^\s"\'>]+))',
    re.IGNORECASE,
)


# ------------------------
# Static-fetch strategy
# ------------------------
def streaming_probe_paths(episode_id: str, type_hint: Optional[ContentType] = None) -> List[str]:
    """URL path prefixes to try for an id, most likely first."""
    if is_episode_slug(episode_id):
        paths = ["episode", "series", "movies"]
    else:
        paths = ["series", "movies", "episode"]

    if type_hint == ContentType.MOVIE:
        paths = ["movies"] + [path for path in paths if path != "movies"]
    elif type_hint == ContentType.CARTOON:
        paths = ["cartoons"] + paths
    return paths


async def probe_streaming_page(
    episode_id: str,
    client: AsyncClient,
    type_hint: Optional[ContentType] = None,
) -> Tuple[str, str]:
    for attempt, path in enumerate(streaming_probe_paths(episode_id, type_hint)):
        url = f"{settings.BASE_URL}/{path}/{episode_id}/"
        timeout = settings.REQUEST_TIMEOUT if attempt == 0 else settings.PROBE_TIMEOUT
        try:
            html = await fetch_page(client, url, timeout=timeout)
        except NotFoundError:
            logger.info(f"No page at /{path}/ for '{episode_id}', trying next shape")
            continue
        return url, html

    raise NotFoundError(episode_id, f"Episode not found: {episode_id}")


def _is_fetchable(url: Optional[str]) -> bool:
    return bool(url) and not url.startswith(("about:", "javascript:", "data:"))


def extract_sources(soup: Tag) -> List[StreamingSource]:
    sources: List[StreamingSource] = []
    seen = set()

    for iframe in soup.select("iframe"):
        src = next((iframe.get(attr) for attr in IFRAME_ATTRS if _is_fetchable(iframe.get(attr))), None)
        if src is None:
            continue
        url = normalize_url(src)
        if url in seen:
            continue
        seen.add(url)
        sources.append(StreamingSource(type=SourceType.IFRAME, url=url, quality="default"))

    for element in soup.select("video, source"):
        # <source> is also used by <picture> for responsive images
        if element.name == "source" and element.parent is not None and element.parent.name == "picture":
            continue
        src = element.get("src") or element.get("data-src")
        if not _is_fetchable(src):
            continue
        url = normalize_url(src)
        if url in seen:
            continue
        seen.add(url)
        sources.append(StreamingSource(
            type=SourceType.VIDEO,
            url=url,
            quality=element.get("label") or element.get("data-quality") or "default",
            mime_type=element.get("type") or "video/mp4",
        ))

    return sources


def extract_downloads(soup: Tag) -> List[Download]:
    downloads: List[Download] = []
    seen = set()
    for link in soup.select(DOWNLOAD_SELECTOR):
        href = (link.get("href") or "").strip()
        if len(href) <= MIN_DOWNLOAD_HREF_LENGTH:
            continue
        url = normalize_url(href)
        if url in seen:
            continue
        seen.add(url)

        text = clean_text(link.get_text(" "))
        quality_match = QUALITY_PATTERN.search(text)
        languages = detect_languages(text)
        downloads.append(Download(
            url=url,
            quality=quality_match.group(0) if quality_match else "default",
            language=languages[0] if languages else "Unknown",
        ))
    return downloads


def extract_stream_languages(soup: Tag) -> List[str]:
    languages: List[str] = []
    for element in soup.select(LANGUAGE_SELECTOR):
        if element.select_one(LANGUAGE_SELECTOR) is not None:
            continue
        language = clean_text(element.get_text(" ")) or clean_text(element.get("value"))
        if language and len(language) < MAX_LANGUAGE_LENGTH and language not in languages:
            languages.append(language)

    if not languages:
        languages = detect_languages(page_text(soup))
    return languages


def extract_servers(soup: Tag) -> List[Server]:
    servers: List[Server] = []
    seen = set()
    for element in soup.select(SERVER_SELECTOR):
        # Skip wrappers such as .server-list; their text is every server name
        if element.select_one(SERVER_SELECTOR) is not None:
            continue
        name = (
            clean_text(element.get_text(" "))
            or clean_text(element.get("data-server"))
            or clean_text(element.get("data-name"))
        )
        if not name or len(name) >= MAX_SERVER_NAME_LENGTH:
            continue
        server_id = slugify(element.get("data-id") or element.get("data-server-id") or name)
        if server_id in seen:
            continue
        seen.add(server_id)
        servers.append(Server(name=name, id=server_id))
    return servers


def parse_episode_streaming(soup: BeautifulSoup, episode_id: str) -> EpisodeStreaming:
    title = first_value(soup, TITLE_STRATEGIES) or ""

    season, episode = parse_season_episode(title)
    if season is None or episode is None:
        id_match = EPISODE_SLUG_PATTERN.search(episode_id)
        if id_match:
            season, episode = int(id_match.group(1)), int(id_match.group(2))

    return EpisodeStreaming(
        episode_id=episode_id,
        title=title,
        season=season,
        episode=episode,
        sources=extract_sources(soup),
        downloads=extract_downloads(soup),
        languages=extract_stream_languages(soup),
        servers=extract_servers(soup),
    )


async def scrape_episode_streaming(
    episode_id: str,
    client: AsyncClient,
    cache: MemoryCache,
    type_hint: Optional[ContentType] = None,
    browser=None,
) -> EpisodeStreaming:
    """
    Scrape streaming sources for an episode (or movie) id.

    Args:
        episode_id: Episode slug such as 'naruto-1x17', or a movie/series slug
        client: Async HTTP client
        cache: Shared cache
        type_hint: Content type to probe first
        browser: Optional BrowserSession used to re-render pages without sources

    Returns:
        EpisodeStreaming. A result without sources is returned but not cached.
    """
    cache_key = f"episode:{episode_id}"
    cached = cache.get(cache_key)
    if cached:
        return cached

    logger.info(f"Scraping episode streaming for '{episode_id}'")
    try:
        url, html = await probe_streaming_page(episode_id, client, type_hint)
        data = parse_episode_streaming(BeautifulSoup(html, "html.parser"), episode_id)

        if not data.sources and browser is not None:
            logger.info(f"No static sources for '{episode_id}', rendering {url} in the browser")
            rendered = await browser.fetch_html(url)
            data = parse_episode_streaming(BeautifulSoup(rendered, "html.parser"), episode_id)
    except Exception as e:
        logger.error(f"Error scraping episode streaming for '{episode_id}': {e}")
        if isinstance(e, ScrapeError):
            raise e.wrap("Failed to scrape episode streaming")
        raise ScrapeError(f"Failed to scrape episode streaming: {e}")

    if not data.sources:
        logger.warning(f"No streaming sources found for '{episode_id}', not caching")
        return data

    logger.info(f"Found {len(data.sources)} sources and {len(data.servers)} servers for '{episode_id}'")
    cache.set(cache_key, data, settings.CACHE_TTL_EPISODE)
    return data


async def scrape_server_link(
    episode_id: str,
    server_id: str,
    client: AsyncClient,
    cache: MemoryCache,
) -> ServerLink:
    cache_key = f"server:{episode_id}:{server_id}"
    cached = cache.get(cache_key)
    if cached:
        return cached

    try:
        episode_data = await scrape_episode_streaming(episode_id, client, cache)
    except ScrapeError as e:
        raise e.wrap("Failed to scrape server link")

    server = next((s for s in episode_data.servers if s.id == server_id), None)
    data = ServerLink(
        episode_id=episode_id,
        server_id=server_id,
        server=server,
        sources=episode_data.sources,
    )
    if episode_data.sources:
        cache.set(cache_key, data, settings.CACHE_TTL_EPISODE)
    return data


# ------------------------
# Embed resolution
# ------------------------
def extract_player_url(html: str) -> Optional[str]:
    """Pull the player iframe URL out of a trembed page, preferring data-src."""
    for tag in IFRAME_TAG_PATTERN.findall(html or ""):
        attrs = {
            name.lower(): double or single or bare
            for name, double, single, bare in IFRAME_SRC_PATTERN.findall(tag)
        }
        src = attrs.get("data-src") or attrs.get("src")
        if not src:
            continue
        src = unescape(src).strip()
        if not _is_fetchable(src):
            continue
        return normalize_url(src)
    return None


def is_redirect_page(url: str) -> bool:
    return "trembed" in url or url.startswith(f"{settings.BASE_URL}/home")


def is_blocked_provider(url: str) -> bool:
    return any(domain in url for domain in settings.BLOCKED_PROVIDERS)


def _retrieve_result(task: asyncio.Future) -> None:
    # Losing candidates may still fail; read their exception so it is never
    # reported as unobserved
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Abandoned candidate failed: {error}")


async def first_success(aws: Sequence[Awaitable[T]], message: str = "All candidates failed") -> T:
    """
    Run awaitables concurrently and return the first successful result.

    Remaining tasks are cancelled once a winner is found. If every awaitable
    fails, AggregateSourceError is raised with all of their errors, in the
    order the awaitables were given.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        for next_done in asyncio.as_completed(tasks):
            try:
                return await next_done
            except Exception:
                continue
        # Every task has failed by now; errors are reported in input order
        raise AggregateSourceError(message, [task.exception() for task in tasks])
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
            task.add_done_callback(_retrieve_result)


async def resolve_candidate(source: StreamingSource, client: AsyncClient, referer: str) -> str:
    url = source.url
    if not is_redirect_page(url):
        if is_blocked_provider(url):
            raise ScrapeError(f"Skipping blocked provider: {url}")
        return url

    logger.debug(f"Resolving player page {url}")
    html = await fetch_page(client, url, timeout=settings.CANDIDATE_TIMEOUT, referer=referer)
    player_url = extract_player_url(html)
    if not player_url:
        raise ExtractionEmptyError(f"No player iframe found in {url}")
    if is_blocked_provider(player_url):
        raise ScrapeError(f"Skipping blocked provider: {player_url}")
    return player_url


async def resolve_embed_source(
    episode_id: str,
    client: AsyncClient,
    cache: MemoryCache,
    type_hint: Optional[ContentType] = None,
    browser=None,
) -> str:
    """
    Resolve the final player iframe URL for the embed page.

    Raises:
        ExtractionEmptyError: the episode page has no sources at all
        AggregateSourceError: every candidate source failed
    """
    cache_key = f"embed:{episode_id}:{type_hint.value if type_hint else 'auto'}"
    cached = cache.get(cache_key)
    if cached:
        logger.info(f"Serving cached player for '{episode_id}'")
        return cached

    episode_data = await scrape_episode_streaming(episode_id, client, cache, type_hint, browser)
    if not episode_data.sources:
        raise ExtractionEmptyError(f"No streaming sources found for {episode_id}")

    candidates = episode_data.sources[:settings.EMBED_MAX_CANDIDATES]
    referer = f"{settings.BASE_URL}/episode/{episode_id}/"
    logger.info(f"Racing {len(candidates)} candidate sources for '{episode_id}'")

    iframe_src = await first_success(
        [resolve_candidate(source, client, referer) for source in candidates],
        message="No working video source found for this episode",
    )

    logger.info(f"Resolved player for '{episode_id}': {iframe_src}")
    cache.set(cache_key, iframe_src, settings.CACHE_TTL_EMBED)
    return iframe_src
