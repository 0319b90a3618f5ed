# extractors.py
"""
HTML extraction helpers for toonstream pages.

The upstream markup is a WordPress theme that has changed several times, so
every field is read through an ordered list of strategies (CSS selector plus
attribute names) and the first non-empty value wins. The tables below hold
those orders; the functions that walk a node never raise for a malformed
item, they return None (or a default) and the caller skips it.

Helpers:
- URL/ID normalization: normalize_image_url, normalize_url, extract_content_id,
  extract_slug, extract_card_type
- Per-node extractors: extract_card, extract_cards, extract_episode
- Page-level: extract_pagination, detect_languages
"""
import logging
import re
from functools import lru_cache
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union
from urllib.parse import urlsplit

from bs4 import Tag

from config import settings
from models import CardType, ContentCard, Episode, Pagination

logger = logging.getLogger(__name__)

CONTENT_ID_PATTERN = re.compile(r'/(?:series|movies|movie|cartoons)/([^/?#]+)')
CONTENT_LINK_SELECTOR = 'a[href*="/series/"], a[href*="/movies/"], a[href*="/movie/"], a[href*="/cartoons/"]'
EXCLUDED_PATHS = ("/category/", "/tag/", "/cast_tv/", "/genre/")
EPISODE_LINK_SELECTOR = 'a[href*="/episode/"]'
SEASON_EPISODE_PATTERN = re.compile(r'(\d+)x(\d+)')
EPISODE_SLUG_PATTERN = re.compile(r'-(\d+)x(\d+)$')
DECIMAL_PATTERN = re.compile(r'\d+(?:\.\d+)?')
QUALITY_PATTERN = re.compile(r'\d+p')
IMAGE_PREFIX_PATTERN = re.compile(r'^Image\s+', re.IGNORECASE)

# Lazy-loading plugins move the real image URL around between these attributes
IMAGE_ATTRS = ("data-src", "data-lazy-src", "src", "data-original")

Strategy = Callable[[Tag], Optional[str]]


# ------------------------
# Text helpers
# ------------------------
def clean_text(text: Optional[str]) -> str:
    if not text:
        return ""
    return re.sub(r'\s+', ' ', text).strip()


def clean_title(text: Optional[str]) -> str:
    return clean_text(IMAGE_PREFIX_PATTERN.sub('', clean_text(text)))


def slugify(name: str) -> str:
    return re.sub(r'\s+', '-', name.strip().lower())


def first_decimal(text: Optional[str]) -> Optional[float]:
    if not text:
        return None
    match = DECIMAL_PATTERN.search(text)
    return float(match.group(0)) if match else None


def parse_int(text: Optional[str]) -> Optional[int]:
    text = clean_text(text).replace(',', '')
    if not re.fullmatch(r'\d+', text):
        return None
    return int(text)


def parse_season_episode(text: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """Parse '<season>x<episode>' from text, e.g. 'Naruto 1x17' -> (1, 17)."""
    match = SEASON_EPISODE_PATTERN.search(text or "")
    if not match:
        return None, None
    return int(match.group(1)), int(match.group(2))


def is_episode_slug(content_id: str) -> bool:
    return bool(EPISODE_SLUG_PATTERN.search(content_id or ""))


@lru_cache(maxsize=16)
def _language_pattern(vocabulary: Tuple[str, ...]) -> re.Pattern:
    alternatives = "|".join(re.escape(word) for word in vocabulary)
    return re.compile(rf'\b({alternatives})\b', re.IGNORECASE)


def detect_languages(text: Optional[str], vocabulary: Optional[Sequence[str]] = None) -> List[str]:
    """Scan text for the language vocabulary, Title-cased and de-duplicated in order."""
    vocabulary = tuple(vocabulary or settings.LANGUAGES)
    if not text or not vocabulary:
        return []
    languages = []
    for match in _language_pattern(vocabulary).finditer(text):
        language = match.group(1).capitalize()
        if language not in languages:
            languages.append(language)
    return languages


def page_text(soup: Tag) -> str:
    body = soup.find("body")
    return (body or soup).get_text(" ")


# ------------------------
# URL & ID normalization
# ------------------------
def normalize_image_url(url: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    if not url or not url.strip():
        return None
    url = url.strip()
    if url.startswith("http"):
        return url
    if url.startswith("//"):
        return "https:" + url
    if url.startswith("/"):
        return (base_url or settings.BASE_URL).rstrip("/") + url
    # Opaque relative reference, left as-is
    return url


def normalize_url(url: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    if not url or not url.strip():
        return None
    url = url.strip()
    base = (base_url or settings.BASE_URL).rstrip("/")
    if url.startswith("http"):
        return url
    if url.startswith("//"):
        return "https:" + url
    if url.startswith("/"):
        return base + url
    return base + "/" + url


def extract_content_id(url: Optional[str]) -> Optional[str]:
    """
    Extract the content slug from a series/movie/cartoon URL.
    Examples:
        https://toonstream.one/series/naruto/ -> naruto
        /movies/your-name/ -> your-name
        /category/action/ -> None
    """
    if not url:
        return None
    match = CONTENT_ID_PATTERN.search(url)
    return match.group(1) if match else None


def extract_slug(url: Optional[str]) -> Optional[str]:
    """Last non-empty path segment of a URL."""
    if not url:
        return None
    segments = [segment for segment in urlsplit(url).path.split("/") if segment]
    return segments[-1] if segments else None


def extract_card_type(url: Optional[str], container_classes: Union[str, Iterable[str], None] = None) -> CardType:
    # Theme class markers are more reliable than the URL, check them first
    if isinstance(container_classes, str):
        classes = container_classes.split()
    else:
        classes = list(container_classes or [])
    if "type-series" in classes:
        return CardType.SERIES
    if "type-movies" in classes:
        return CardType.MOVIE
    url = url or ""
    if "/series/" in url:
        return CardType.SERIES
    if "/movie" in url:
        return CardType.MOVIE
    return CardType.UNKNOWN


# ------------------------
# Selector-fallback strategies
# ------------------------
def _attr_value(element: Tag, attr: str) -> Optional[str]:
    value = element.get(attr)
    if isinstance(value, list):
        value = " ".join(value)
    if not value or not value.strip() or value.startswith("data:"):
        return None
    return value.strip()


def attr_of(selector: str, attrs: Sequence[str] = IMAGE_ATTRS) -> Strategy:
    """First element matching selector; first of its attrs that is non-empty."""
    def strategy(node: Tag) -> Optional[str]:
        element = node.select_one(selector)
        if element is None:
            return None
        for attr in attrs:
            value = _attr_value(element, attr)
            if value:
                return value
        return None
    return strategy


def text_of(selector: str) -> Strategy:
    """Text of the first element matching selector that has any."""
    def strategy(node: Tag) -> Optional[str]:
        for element in node.select(selector):
            text = clean_text(element.get_text(" "))
            if text:
                return text
        return None
    return strategy


def own_attr(attr: str) -> Strategy:
    def strategy(node: Tag) -> Optional[str]:
        return _attr_value(node, attr)
    return strategy


def own_text() -> Strategy:
    def strategy(node: Tag) -> Optional[str]:
        return clean_text(node.get_text(" ")) or None
    return strategy


def first_value(node: Tag, strategies: Sequence[Strategy]) -> Optional[str]:
    for strategy in strategies:
        value = strategy(node)
        if value:
            return value
    return None


CARD_IMAGE_SELECTORS = (
    "img",
    ".poster img",
    ".thumbnail img",
    "figure img",
    '[class*="image"] img',
    '[class*="poster"] img',
)

CARD_POSTER_STRATEGIES = [attr_of(selector) for selector in CARD_IMAGE_SELECTORS]

CARD_TITLE_STRATEGIES = [
    attr_of("img", ("alt",)),
    attr_of("img", ("title",)),
    text_of('.title, h2, h3, h4, [class*="title"]'),
]

# Applied to the card's primary anchor after the node strategies
LINK_TITLE_STRATEGIES = [own_attr("title"), own_text()]

RATING_SELECTOR = '.vote, .rating, .tmdb, .imdb, [class*="rating"]'

EPISODE_TITLE_STRATEGIES = [own_text(), own_attr("title")]

EPISODE_FALLBACK_TITLE_STRATEGIES = [text_of('.entry-title, h2, h3')]

EPISODE_DATE_STRATEGIES = [text_of('.date, time, .time, [class*="date"], .aired')]

DETAIL_FIELD_STRATEGIES: Dict[str, List[Strategy]] = {
    "title": [
        text_of("h1"),
        text_of(".entry-title"),
        text_of(".title"),
        text_of('[class*="title"]'),
    ],
    "poster": [
        attr_of(".poster img"),
        attr_of(".thumbnail img"),
        attr_of("article img"),
        attr_of('[class*="poster"] img'),
    ],
    "quality": [
        text_of(".quality"),
        text_of('[class*="quality"]'),
    ],
    "runtime": [
        text_of(".runtime"),
        text_of(".duration"),
        text_of('[class*="runtime"]'),
    ],
}


def extract_field(node: Tag, field: str) -> Optional[str]:
    return first_value(node, DETAIL_FIELD_STRATEGIES[field])


def extract_rating(node: Tag, selector: str = RATING_SELECTOR) -> Optional[float]:
    for element in node.select(selector):
        rating = first_decimal(element.get_text(" "))
        if rating is not None:
            return rating
    return None


# ------------------------
# Card / listing extraction
# ------------------------
def extract_card(node: Tag) -> Optional[ContentCard]:
    """
    Extract a content card from one listing item.

    Returns None when the node is not a content item: no content link, a
    taxonomy link, no derivable id or no title.
    """
    try:
        link = node.select_one(CONTENT_LINK_SELECTOR)
        if link is None:
            return None

        href = (link.get("href") or "").strip()
        if not href or any(path in href for path in EXCLUDED_PATHS):
            return None

        url = normalize_url(href)
        content_id = extract_content_id(url)
        if not content_id:
            return None

        poster = normalize_image_url(first_value(node, CARD_POSTER_STRATEGIES))

        title = clean_title(
            first_value(node, CARD_TITLE_STRATEGIES) or first_value(link, LINK_TITLE_STRATEGIES)
        )
        if not title:
            return None

        return ContentCard(
            id=content_id,
            title=title,
            url=url,
            poster=poster,
            type=extract_card_type(url, node.get("class")),
            rating=extract_rating(node),
        )
    except Exception as e:
        logger.error(f"Error extracting content card: {e}")
        return None


def extract_cards(nodes: Iterable[Tag], exclude_ids: Iterable[str] = ()) -> List[ContentCard]:
    """Extract cards from listing items; the first card for an id wins."""
    seen = set(exclude_ids)
    cards = []
    for node in nodes:
        card = extract_card(node)
        if card is None or card.id in seen:
            continue
        seen.add(card.id)
        cards.append(card)
    return cards


# ------------------------
# Episode extraction
# ------------------------
def extract_episode(node: Tag) -> Optional[Episode]:
    try:
        link = node if node.name == "a" else node.find("a", href=True)
        if link is None:
            return None

        url = normalize_url(link.get("href"))
        if not url:
            return None
        episode_id = extract_content_id(url) or extract_slug(url)
        if not episode_id:
            return None

        title = (
            first_value(link, EPISODE_TITLE_STRATEGIES)
            or first_value(node, EPISODE_FALLBACK_TITLE_STRATEGIES)
            or episode_id.replace("-", " ")
        )
        season, number = parse_season_episode(f"{title} {episode_id}")

        return Episode(
            id=episode_id,
            title=title,
            url=url,
            season=season,
            episode=number,
            release_date=first_value(node, EPISODE_DATE_STRATEGIES),
        )
    except Exception as e:
        logger.error(f"Error extracting episode info: {e}")
        return None


def episode_container(link: Tag, stop: Optional[Tag] = None) -> Tag:
    """The list item holding an episode link, searched no higher than stop."""
    for parent in link.parents:
        if parent is stop:
            break
        if parent.name == "li" or "episode-item" in (parent.get("class") or []):
            return parent
    parent = link.parent
    return parent if parent is not None and parent is not stop else link


# ------------------------
# Pagination
# ------------------------
PAGINATION_SELECTORS = (
    ".pagination",
    ".nav-links",
    ".wp-pagenavi",
    "nav.navigation",
    '[class*="pagination"]',
)


def extract_pagination(soup: Tag) -> Pagination:
    try:
        container = None
        for selector in PAGINATION_SELECTORS:
            container = soup.select_one(selector)
            if container is not None:
                break
        if container is None:
            return Pagination()

        current_el = container.select_one(".current, .active, [aria-current]")
        current_page = (parse_int(current_el.get_text()) if current_el else None) or 1

        page_numbers = [
            number
            for number in (parse_int(el.get_text()) for el in container.select(".page-numbers, a, span"))
            if number
        ]
        total_pages = max([current_page, *page_numbers])

        return Pagination(
            current_page=current_page,
            total_pages=total_pages,
            has_next_page=container.select_one(".next") is not None,
            has_prev_page=container.select_one(".prev, .previous") is not None,
        )
    except Exception as e:
        logger.error(f"Error extracting pagination: {e}")
        return Pagination()
