# scraper.py
"""
Page scrapers for toonstream.one listings and content detail pages.

This module provides async functions to scrape:
- The home page (latest series/movies, trending, weekly schedule)
- Search results and search suggestions
- Category, language and type listings, plus random picks
- Content details (series, movies and cartoons) with seasons and episodes

Every public function consults the cache first and stores only successful
results. Failures are raised as ScrapeError subclasses with a message naming
the operation that failed.
"""
import asyncio
import logging
import random
import re
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

from bs4 import BeautifulSoup, Tag
from httpx import AsyncClient

from cache import MemoryCache
from config import settings
from errors import ExtractionEmptyError, NotFoundError, ScrapeError
from extractors import (
    EPISODE_LINK_SELECTOR,
    clean_text,
    detect_languages,
    episode_container,
    extract_card,
    extract_cards,
    extract_episode,
    extract_field,
    extract_pagination,
    extract_rating,
    normalize_image_url,
    page_text,
)
from http_client import fetch_page
from models import (
    Availability,
    AvailabilityResponse,
    CardType,
    CategoriesResponse,
    Category,
    CategoryResponse,
    ContentCard,
    ContentDetail,
    ContentType,
    Episode,
    HomeResponse,
    ScheduleEntry,
    SearchResponse,
    SearchResult,
    Suggestion,
    SuggestionsResponse,
)

logger = logging.getLogger(__name__)

LISTING_ITEM_SELECTOR = "ul.post-lst li"
HOME_SECTION_LIMIT = 20
SUGGESTION_LIMIT = 10
DESCRIPTION_LIMIT = 200
RANDOM_MAX_PAGE = 50

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# Upstream category slugs for the language listings
LANGUAGE_CATEGORIES = {
    "hindi": "hindi-language",
    "tamil": "tamil",
    "telugu": "telugu",
    "english": "english",
}

MOVIES_CATEGORY = "anime-movies"
SERIES_CATEGORY = "anime-series"

FALLBACK_GENRES = [
    Category(slug="action", name="Action", url="/category/action/"),
    Category(slug="adventure", name="Adventure", url="/category/adventure/"),
    Category(slug="comedy", name="Comedy", url="/category/comedy/"),
    Category(slug="drama", name="Drama", url="/category/drama/"),
    Category(slug="fantasy", name="Fantasy", url="/category/fantasy/"),
    Category(slug="horror", name="Horror", url="/category/horror/"),
    Category(slug="mystery", name="Mystery", url="/category/mystery/"),
    Category(slug="romance", name="Romance", url="/category/romance/"),
    Category(slug="sci-fi", name="Sci-Fi", url="/category/sci-fi/"),
    Category(slug="slice-of-life", name="Slice of Life", url="/category/slice-of-life/"),
    Category(slug="sports", name="Sports", url="/category/sports/"),
    Category(slug="thriller", name="Thriller", url="/category/thriller/"),
    Category(slug="supernatural", name="Supernatural", url="/category/supernatural/"),
]

# Path segment for each content type; probe order is series -> movies -> cartoons
CONTENT_PATHS = {
    ContentType.SERIES: "series",
    ContentType.MOVIE: "movies",
    ContentType.CARTOON: "cartoons",
}
DETAIL_PROBE_ORDER = (ContentType.SERIES, ContentType.MOVIE, ContentType.CARTOON)

DESCRIPTION_SELECTOR = '.description, .synopsis, .entry-content, [class*="description"]'
DETAIL_RATING_SELECTOR = '.rating, .tmdb, .imdb, [class*="rating"], .vote'
GENRE_SELECTOR = '[rel="category tag"], .genres a, .category a, [class*="genre"] a'
CAST_SELECTOR = '[href*="/cast_tv/"], .cast a'
SEASON_CONTAINER_SELECTOR = '[class*="season"], .episodes-list, [id*="season"]'
SEASON_HEADING_SELECTOR = '[class*="season-title"], h2, h3'
SEASON_NUMBER_PATTERN = re.compile(r'season\s*(\d+)', re.IGNORECASE)
SEASON_ATTR_PATTERN = re.compile(r'season[-_]?(\d+)', re.IGNORECASE)
RELATED_SELECTOR = (
    '.related li, .related article, '
    '[class*="related"] li, [class*="related"] article, [class*="related"] .item'
)
MAX_TAXONOMY_LENGTH = 50


def _failure(error: Exception, prefix: str) -> ScrapeError:
    """Wrap an error into a ScrapeError naming the failed operation."""
    if isinstance(error, ScrapeError):
        return error.wrap(prefix)
    return ScrapeError(f"{prefix}: {error}")


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


# ------------------------
# Home
# ------------------------
def parse_schedule(soup: BeautifulSoup) -> Dict[str, List[ScheduleEntry]]:
    schedule: Dict[str, List[ScheduleEntry]] = {}
    sections = soup.select('.schedule, #schedule, [class*="schedule"]')
    for day in WEEKDAYS:
        entries: List[ScheduleEntry] = []
        seen = set()
        for section in sections:
            for day_section in section.select(f'[data-day="{day}"], .{day}, #{day}'):
                for item in day_section.select("article, .item, .post"):
                    card = extract_card(item)
                    if card is None or card.id in seen:
                        continue
                    seen.add(card.id)
                    time_el = item.select_one(".time, .release-time")
                    release_time = clean_text(time_el.get_text(" ")) if time_el else ""
                    entries.append(ScheduleEntry(**card.model_dump(), release_time=release_time or None))
        if entries:
            schedule[day] = entries
    return schedule


def parse_home(soup: BeautifulSoup) -> HomeResponse:
    latest_series: List[ContentCard] = []
    latest_movies: List[ContentCard] = []

    for card in extract_cards(soup.select(LISTING_ITEM_SELECTOR)):
        if card.type == CardType.SERIES and len(latest_series) < HOME_SECTION_LIMIT:
            latest_series.append(card)
        elif card.type == CardType.MOVIE and len(latest_movies) < HOME_SECTION_LIMIT:
            latest_movies.append(card)

    trending = extract_cards(
        soup.select('[class*="trending"] li, [class*="trending"] article, #trending li')
    )[:HOME_SECTION_LIMIT]

    return HomeResponse(
        latest_series=latest_series,
        latest_movies=latest_movies,
        trending=trending,
        schedule=parse_schedule(soup),
    )


async def scrape_home(client: AsyncClient, cache: MemoryCache) -> HomeResponse:
    cache_key = "home"
    cached = cache.get(cache_key)
    if cached:
        return cached

    url = "/home/"
    logger.info(f"Scraping home page URL: {url}")
    try:
        html = await fetch_page(client, url)
        data = parse_home(_soup(html))
    except Exception as e:
        logger.error(f"Error scraping home: {e}")
        raise _failure(e, "Failed to scrape home page")

    logger.info(f"Scraped home page: {len(data.latest_series)} series, {len(data.latest_movies)} movies")
    cache.set(cache_key, data, settings.CACHE_TTL_HOME)
    return data


# ------------------------
# Search
# ------------------------
def parse_search_results(soup: BeautifulSoup) -> List[SearchResult]:
    results = []
    seen = set()
    for item in soup.select(LISTING_ITEM_SELECTOR):
        card = extract_card(item)
        if card is None or card.id in seen:
            continue
        seen.add(card.id)

        article = item.select_one("article") or item
        desc_el = article.select_one(".description, .excerpt, .summary, p")
        description = clean_text(desc_el.get_text(" ")) if desc_el else ""
        if len(description) > DESCRIPTION_LIMIT:
            description = description[:DESCRIPTION_LIMIT] + "..."

        # Hindi dubs are tagged through the category class on the list item
        item_classes = " ".join(item.get("class") or [])
        has_hindi = "hindi-language" in item_classes or "hindi" in card.title.lower()

        results.append(SearchResult(
            **card.model_dump(),
            description=description or None,
            has_hindi=has_hindi,
        ))
    return results


async def scrape_search(keyword: str, page: int, client: AsyncClient, cache: MemoryCache) -> SearchResponse:
    cache_key = f"search:{keyword}:{page}"
    cached = cache.get(cache_key)
    if cached:
        return cached

    url = f"/home/?s={quote(keyword)}"
    if page > 1:
        url += f"&paged={page}"

    logger.info(f"Scraping search URL: {url}")
    try:
        html = await fetch_page(client, url)
        soup = _soup(html)
        data = SearchResponse(
            keyword=keyword,
            results=parse_search_results(soup),
            pagination=extract_pagination(soup),
        )
    except Exception as e:
        logger.error(f"Error scraping search for '{keyword}': {e}")
        raise _failure(e, "Failed to search")

    logger.info(f"Found {len(data.results)} results for '{keyword}' on page {page}")
    cache.set(cache_key, data, settings.CACHE_TTL_SEARCH)
    return data


async def scrape_search_suggestions(keyword: str, client: AsyncClient, cache: MemoryCache) -> SuggestionsResponse:
    cache_key = f"suggestions:{keyword}"
    cached = cache.get(cache_key)
    if cached:
        return cached

    try:
        search_data = await scrape_search(keyword, 1, client, cache)
    except ScrapeError as e:
        raise e.wrap("Failed to get suggestions")

    suggestions = [
        Suggestion(
            id=item.id,
            title=item.title,
            poster=item.poster,
            type=item.type,
            has_hindi=item.has_hindi,
            total_episodes=item.total_episodes,
        )
        for item in search_data.results[:SUGGESTION_LIMIT]
    ]
    data = SuggestionsResponse(keyword=keyword, suggestions=suggestions)
    cache.set(cache_key, data, settings.CACHE_TTL_SEARCH)
    return data


# ------------------------
# Categories
# ------------------------
def _category_slug(href: str) -> Optional[str]:
    if "/category/" not in href:
        return None
    slug = href.split("/category/", 1)[1].split("/")[0]
    return slug or None


def parse_categories(soup: BeautifulSoup) -> List[Category]:
    categories: List[Category] = []
    seen = set()
    selectors = (
        'nav a[href*="/category/"], .menu a[href*="/category/"]',
        ".widget_categories a, .categories a",
    )
    for selector in selectors:
        for link in soup.select(selector):
            href = link.get("href") or ""
            name = clean_text(link.get_text(" "))
            slug = _category_slug(href)
            if not slug or not name or slug in seen:
                continue
            seen.add(slug)
            categories.append(Category(slug=slug, name=name, url=href))
    return categories


async def scrape_categories(client: AsyncClient, cache: MemoryCache) -> CategoriesResponse:
    cache_key = "categories:all"
    cached = cache.get(cache_key)
    if cached:
        return cached

    logger.info("Scraping category list from the home page")
    try:
        html = await fetch_page(client, "/")
        categories = parse_categories(_soup(html))
    except Exception as e:
        logger.error(f"Error scraping categories: {e}")
        raise _failure(e, "Failed to scrape categories")

    if not categories:
        logger.info("No categories found in page markup, using fallback genres")
        categories = list(FALLBACK_GENRES)

    data = CategoriesResponse(categories=categories)
    cache.set(cache_key, data, settings.CACHE_TTL_CATEGORIES)
    return data


async def scrape_category(category: str, page: int, client: AsyncClient, cache: MemoryCache) -> CategoryResponse:
    cache_key = f"category:{category}:{page}"
    cached = cache.get(cache_key)
    if cached:
        return cached

    # Construct URL: /category/action/ or /category/action/page/2/
    if page == 1:
        url = f"/category/{category}/"
    else:
        url = f"/category/{category}/page/{page}/"

    logger.info(f"Scraping category URL: {url}")
    try:
        html = await fetch_page(client, url)
        soup = _soup(html)
        title_el = soup.select_one(".page-title, h1, .section-title")
        category_name = clean_text(title_el.get_text(" ")) if title_el else ""
        data = CategoryResponse(
            category=category,
            category_name=category_name or category,
            results=extract_cards(soup.select(LISTING_ITEM_SELECTOR)),
            pagination=extract_pagination(soup),
        )
    except Exception as e:
        logger.error(f"Error scraping category '{category}' page {page}: {e}")
        raise _failure(e, "Failed to scrape category")

    logger.info(f"Scraped {len(data.results)} items for category '{category}' on page {page}")
    cache.set(cache_key, data, settings.CACHE_TTL_CATEGORY)
    return data


async def scrape_by_language(language: str, page: int, client: AsyncClient, cache: MemoryCache) -> CategoryResponse:
    category = LANGUAGE_CATEGORIES.get(language.lower(), language.lower())
    return await scrape_category(category, page, client, cache)


async def scrape_movies(page: int, client: AsyncClient, cache: MemoryCache) -> CategoryResponse:
    return await scrape_category(MOVIES_CATEGORY, page, client, cache)


async def scrape_series(page: int, client: AsyncClient, cache: MemoryCache) -> CategoryResponse:
    return await scrape_category(SERIES_CATEGORY, page, client, cache)


async def scrape_random(category: str, client: AsyncClient, cache: MemoryCache) -> ContentCard:
    """Pick a random item: a random page (capped) of the category, then a random card."""
    try:
        first_page = await scrape_category(category, 1, client, cache)
        max_page = min(first_page.pagination.total_pages, RANDOM_MAX_PAGE)
        random_page = random.randint(1, max_page)

        page_data = first_page
        if random_page != 1:
            page_data = await scrape_category(category, random_page, client, cache)

        if not page_data.results:
            raise ExtractionEmptyError("No anime found")
        return random.choice(page_data.results)
    except ScrapeError as e:
        logger.error(f"Error picking random item from '{category}': {e}")
        raise e.wrap("Failed to scrape random anime")


# ------------------------
# Content details
# ------------------------
def detail_probe_order(type_hint: Optional[ContentType] = None) -> List[ContentType]:
    if type_hint is None:
        return list(DETAIL_PROBE_ORDER)
    return [type_hint] + [content_type for content_type in DETAIL_PROBE_ORDER if content_type != type_hint]


async def probe_content_page(
    anime_id: str,
    client: AsyncClient,
    type_hint: Optional[ContentType] = None,
) -> Tuple[ContentType, str, str]:
    """
    Find the page for a content id by trying each type's URL shape in turn.

    Only a 404 moves on to the next shape; any other failure is raised at once,
    since it means the upstream is unreachable rather than the id being wrong.

    Returns:
        (content type, page URL, page HTML)
    """
    for attempt, content_type in enumerate(detail_probe_order(type_hint)):
        url = f"{settings.BASE_URL}/{CONTENT_PATHS[content_type]}/{anime_id}/"
        timeout = settings.REQUEST_TIMEOUT if attempt == 0 else settings.PROBE_TIMEOUT
        try:
            html = await fetch_page(client, url, timeout=timeout)
        except NotFoundError:
            logger.info(f"No {content_type.value} page for '{anime_id}', trying next type")
            continue
        return content_type, url, html

    raise NotFoundError(anime_id, f"Content not found: {anime_id}")


def extract_description(soup: Tag) -> str:
    parts: List[str] = []
    for container in soup.select(DESCRIPTION_SELECTOR):
        paragraphs = [container] if container.name == "p" else container.find_all("p")
        for paragraph in paragraphs:
            text = clean_text(paragraph.get_text(" "))
            # Nested description containers repeat the same paragraphs
            if len(text) > 20 and text not in parts:
                parts.append(text)
    return clean_text(" ".join(parts))


def collect_texts(soup: Tag, selector: str, max_length: int = MAX_TAXONOMY_LENGTH) -> List[str]:
    values: List[str] = []
    for element in soup.select(selector):
        text = clean_text(element.get_text(" "))
        if text and len(text) < max_length and text not in values:
            values.append(text)
    return values


def _heading_season(heading: Tag) -> Optional[int]:
    match = SEASON_NUMBER_PATTERN.search(heading.get_text(" "))
    return int(match.group(1)) if match else None


def _marker_season(container: Tag) -> Optional[int]:
    markers = " ".join(container.get("class") or []) + " " + (container.get("id") or "")
    match = SEASON_ATTR_PATTERN.search(markers)
    return int(match.group(1)) if match else None


def _season_number(container: Tag) -> Optional[int]:
    for heading in container.select(SEASON_HEADING_SELECTOR):
        season = _heading_season(heading)
        if season is not None:
            return season
    return _marker_season(container)


def _enclosing_season(container: Tag) -> Optional[int]:
    """
    Season of the nearest enclosing season block.

    Inside that block the closest "Season N" heading before the container
    wins, so a wrapper holding several headed lists maps each list to its own
    heading.
    """
    for ancestor in container.parents:
        if isinstance(ancestor, BeautifulSoup) or not ancestor.css.match(SEASON_CONTAINER_SELECTOR):
            continue
        for element in container.previous_elements:
            if element is ancestor:
                break
            if isinstance(element, Tag) and element.css.match(SEASON_HEADING_SELECTOR):
                season = _heading_season(element)
                if season is not None:
                    return season
        season = _marker_season(ancestor)
        if season is not None:
            return season
    return None


def _has_episodes(node: Tag) -> bool:
    return node.select_one(EPISODE_LINK_SELECTOR) is not None


def extract_seasons(soup: Tag) -> Dict[int, List[Episode]]:
    """
    Group episode links into seasons.

    Season containers are read first (innermost ones only, outer wrappers match
    the same selectors). A container without its own heading takes the season
    of the block around it. When none of them yields an episode, every episode link
    on the page is grouped by the season parsed from its own title or slug.
    """
    seasons: Dict[int, List[Episode]] = {}
    seen = set()

    for container in soup.select(SEASON_CONTAINER_SELECTOR):
        if not _has_episodes(container):
            continue
        if any(_has_episodes(nested) for nested in container.select(SEASON_CONTAINER_SELECTOR)):
            continue

        heading_season = _season_number(container) or _enclosing_season(container)
        for link in container.select(EPISODE_LINK_SELECTOR):
            episode = extract_episode(episode_container(link, stop=container))
            if episode is None or episode.id in seen:
                continue
            seen.add(episode.id)
            season = heading_season or episode.season or 1
            if episode.season != season:
                episode = episode.model_copy(update={"season": season})
            seasons.setdefault(season, []).append(episode)

    if seasons:
        return seasons

    for link in soup.select(EPISODE_LINK_SELECTOR):
        episode = extract_episode(episode_container(link))
        if episode is None or episode.id in seen:
            continue
        seen.add(episode.id)
        if episode.season is None:
            episode = episode.model_copy(update={"season": 1})
        seasons.setdefault(episode.season, []).append(episode)

    return seasons


def parse_anime_details(soup: BeautifulSoup, anime_id: str, content_type: ContentType, url: str) -> ContentDetail:
    title = extract_field(soup, "title") or anime_id.replace("-", " ")

    seasons: Dict[int, List[Episode]] = {}
    if content_type in (ContentType.SERIES, ContentType.CARTOON):
        seasons = extract_seasons(soup)

    return ContentDetail(
        id=anime_id,
        type=content_type,
        url=url,
        title=title,
        poster=normalize_image_url(extract_field(soup, "poster")),
        description=extract_description(soup),
        rating=extract_rating(soup, DETAIL_RATING_SELECTOR),
        quality=extract_field(soup, "quality"),
        runtime=extract_field(soup, "runtime"),
        genres=collect_texts(soup, GENRE_SELECTOR),
        languages=detect_languages(page_text(soup)),
        cast=collect_texts(soup, CAST_SELECTOR),
        seasons=seasons,
        total_episodes=sum(len(episodes) for episodes in seasons.values()),
        related=extract_cards(soup.select(RELATED_SELECTOR), exclude_ids=[anime_id]),
    )


async def scrape_anime_details(
    anime_id: str,
    client: AsyncClient,
    cache: MemoryCache,
    type_hint: Optional[ContentType] = None,
) -> ContentDetail:
    """
    Scrape a series, movie or cartoon page from toonstream.one.

    Args:
        anime_id: Content slug (e.g. 'naruto-shippuden')
        client: Async HTTP client
        cache: Shared cache
        type_hint: Content type to probe first; None probes series, movies, cartoons

    Returns:
        ContentDetail with metadata, seasons and related content
    """
    cache_key = f"content:{anime_id}:{type_hint.value if type_hint else 'auto'}"
    cached = cache.get(cache_key)
    if cached:
        logger.info(f"Serving cached details for {anime_id}")
        return cached

    logger.info(f"Scraping anime details for '{anime_id}'")
    try:
        content_type, url, html = await probe_content_page(anime_id, client, type_hint)
        detail = parse_anime_details(_soup(html), anime_id, content_type, url)
    except Exception as e:
        logger.error(f"Error scraping anime details for '{anime_id}': {e}")
        raise _failure(e, "Failed to scrape anime details")

    logger.info(f"Scraped {detail.type.value} '{anime_id}' with {detail.total_episodes} episodes")
    cache.set(cache_key, detail, settings.CACHE_TTL_DETAIL)
    return detail


async def check_batch_availability(ids: Sequence[str], client: AsyncClient, cache: MemoryCache) -> AvailabilityResponse:
    semaphore = asyncio.Semaphore(settings.BATCH_CONCURRENCY)

    async def check(anime_id: str) -> Availability:
        async with semaphore:
            try:
                data = await scrape_anime_details(anime_id, client, cache)
            except ScrapeError as e:
                return Availability(id=anime_id, available=False, error=str(e))
            return Availability(
                id=anime_id,
                available=True,
                total_episodes=data.total_episodes,
                has_hindi="Hindi" in data.languages,
            )

    results = await asyncio.gather(*(check(anime_id) for anime_id in ids))
    return AvailabilityResponse(results=list(results))
