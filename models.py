# models.py
from enum import Enum
from pydantic import BaseModel, Field
from typing import Dict, List, Optional


class CardType(str, Enum):
    SERIES = "Series"
    MOVIE = "Movie"
    UNKNOWN = "Unknown"


class ContentType(str, Enum):
    SERIES = "series"
    MOVIE = "movie"
    CARTOON = "cartoon"


class SourceType(str, Enum):
    IFRAME = "iframe"
    VIDEO = "video"


class ContentCard(BaseModel):
    id: str = Field(..., description="Content slug, unique per content item")
    title: str = Field(..., description="Content title")
    url: str = Field(..., description="Canonical content page URL")
    poster: Optional[str] = Field(None, description="Poster image URL")
    type: CardType = Field(CardType.UNKNOWN, description="Series, Movie or Unknown")
    rating: Optional[float] = Field(None, description="TMDB or other rating")

    class Config:
        from_attributes = True
        frozen = True
        populate_by_name = True


class SearchResult(ContentCard):
    description: Optional[str] = Field(None, description="Short excerpt, at most 200 characters")
    has_hindi: bool = Field(False, alias="hasHindi", description="Whether a Hindi dub is advertised")
    total_episodes: Optional[int] = Field(None, alias="totalEpisodes", description="Episode count when listed")


class ScheduleEntry(ContentCard):
    release_time: Optional[str] = Field(None, alias="releaseTime", description="Advertised release time")


class Episode(BaseModel):
    id: str = Field(..., description="Episode slug")
    title: str = Field(..., description="Episode title")
    url: str = Field(..., description="Episode page URL")
    season: Optional[int] = Field(None, description="Season number")
    episode: Optional[int] = Field(None, description="Episode number")
    release_date: Optional[str] = Field(None, alias="releaseDate", description="Episode release date")

    class Config:
        from_attributes = True
        frozen = True
        populate_by_name = True


class Pagination(BaseModel):
    current_page: int = Field(1, ge=1, alias="currentPage")
    total_pages: int = Field(1, ge=1, alias="totalPages")
    has_next_page: bool = Field(False, alias="hasNextPage")
    has_prev_page: bool = Field(False, alias="hasPrevPage")

    class Config:
        from_attributes = True
        frozen = True
        populate_by_name = True


class ContentDetail(BaseModel):
    success: bool = True
    id: str = Field(..., description="Content slug")
    type: ContentType = Field(..., description="series, movie or cartoon")
    url: str = Field(..., description="Resolved content page URL")
    title: str = Field(..., description="Content title")
    poster: Optional[str] = Field(None, description="Poster image URL")
    description: str = Field("", description="Synopsis")
    rating: Optional[float] = Field(None, description="TMDB or other rating")
    quality: Optional[str] = Field(None, description="Advertised quality")
    runtime: Optional[str] = Field(None, description="Runtime or episode duration")
    genres: List[str] = Field(default_factory=list, description="Genres in page order")
    languages: List[str] = Field(default_factory=list, description="Detected audio languages")
    cast: List[str] = Field(default_factory=list, description="Cast members")
    seasons: Dict[int, List[Episode]] = Field(default_factory=dict, description="Episodes grouped by season")
    total_episodes: int = Field(0, alias="totalEpisodes", description="Number of episodes across all seasons")
    related: List[ContentCard] = Field(default_factory=list, description="Related content")

    class Config:
        from_attributes = True
        frozen = True
        populate_by_name = True


class StreamingSource(BaseModel):
    type: SourceType = Field(..., description="iframe or video")
    url: str = Field(..., description="Source URL")
    quality: str = Field("default", description="Quality label")
    mime_type: Optional[str] = Field(None, alias="mimeType", description="MIME type for video sources")

    class Config:
        from_attributes = True
        frozen = True
        populate_by_name = True


class Download(BaseModel):
    url: str = Field(..., description="Download URL")
    quality: str = Field("default", description="Quality such as 720p")
    language: str = Field("Unknown", description="Audio language")

    class Config:
        from_attributes = True
        frozen = True


class Server(BaseModel):
    name: str = Field(..., description="Server display name")
    id: str = Field(..., description="Slugified server id")

    class Config:
        from_attributes = True
        frozen = True


class EpisodeStreaming(BaseModel):
    success: bool = True
    episode_id: str = Field(..., alias="episodeId")
    title: str = Field("", description="Episode page title")
    season: Optional[int] = Field(None, description="Season number")
    episode: Optional[int] = Field(None, description="Episode number")
    sources: List[StreamingSource] = Field(default_factory=list)
    downloads: List[Download] = Field(default_factory=list)
    languages: List[str] = Field(default_factory=list)
    servers: List[Server] = Field(default_factory=list)

    class Config:
        from_attributes = True
        frozen = True
        populate_by_name = True


class ServerLink(BaseModel):
    success: bool = True
    episode_id: str = Field(..., alias="episodeId")
    server_id: str = Field(..., alias="serverId")
    server: Optional[Server] = None
    sources: List[StreamingSource] = Field(default_factory=list)

    class Config:
        from_attributes = True
        frozen = True
        populate_by_name = True


class Category(BaseModel):
    slug: str = Field(..., description="Category slug")
    name: str = Field(..., description="Category display name")
    url: str = Field(..., description="Category page URL or path")

    class Config:
        from_attributes = True
        frozen = True


class HomeResponse(BaseModel):
    success: bool = True
    latest_series: List[ContentCard] = Field(default_factory=list, alias="latestSeries")
    latest_movies: List[ContentCard] = Field(default_factory=list, alias="latestMovies")
    trending: List[ContentCard] = Field(default_factory=list)
    schedule: Dict[str, List[ScheduleEntry]] = Field(default_factory=dict)

    class Config:
        from_attributes = True
        frozen = True
        populate_by_name = True


class SearchResponse(BaseModel):
    success: bool = True
    keyword: str
    results: List[SearchResult] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)

    class Config:
        from_attributes = True
        frozen = True


class Suggestion(BaseModel):
    id: str
    title: str
    poster: Optional[str] = None
    type: CardType = CardType.UNKNOWN
    has_hindi: bool = Field(False, alias="hasHindi")
    total_episodes: Optional[int] = Field(None, alias="totalEpisodes")

    class Config:
        from_attributes = True
        frozen = True
        populate_by_name = True


class SuggestionsResponse(BaseModel):
    success: bool = True
    keyword: str
    suggestions: List[Suggestion] = Field(default_factory=list)

    class Config:
        from_attributes = True
        frozen = True


class CategoriesResponse(BaseModel):
    success: bool = True
    categories: List[Category] = Field(default_factory=list)

    class Config:
        from_attributes = True
        frozen = True


class CategoryResponse(BaseModel):
    success: bool = True
    category: str
    category_name: str = Field(..., alias="categoryName")
    results: List[ContentCard] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)

    class Config:
        from_attributes = True
        frozen = True
        populate_by_name = True


class RandomResponse(ContentCard):
    success: bool = True


class ScheduleResponse(BaseModel):
    success: bool = True
    schedule: Dict[str, List[ScheduleEntry]] = Field(default_factory=dict)

    class Config:
        from_attributes = True
        frozen = True


class DayScheduleResponse(BaseModel):
    success: bool = True
    day: str
    results: List[ScheduleEntry] = Field(default_factory=list)

    class Config:
        from_attributes = True
        frozen = True


class BatchAvailabilityRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1, max_length=50, description="Content ids to check")


class Availability(BaseModel):
    id: str
    available: bool
    total_episodes: Optional[int] = Field(None, alias="totalEpisodes")
    has_hindi: Optional[bool] = Field(None, alias="hasHindi")
    error: Optional[str] = None

    class Config:
        from_attributes = True
        frozen = True
        populate_by_name = True


class AvailabilityResponse(BaseModel):
    success: bool = True
    results: List[Availability] = Field(default_factory=list)

    class Config:
        from_attributes = True
        frozen = True


class SourceInfo(BaseModel):
    success: bool = True
    message: str
    embed_url: str = Field(..., alias="embedUrl")

    class Config:
        from_attributes = True
        frozen = True
        populate_by_name = True


class ErrorResponse(BaseModel):
    success: bool = Field(False, description="Always false for errors")
    error: str = Field(..., description="Error message")

    class Config:
        from_attributes = True
