# config.py
import logging
from typing import List

from pydantic_settings import BaseSettings

_logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # App
    APP_NAME: str = "ToonStream API"
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # Upstream site
    # Note: toonstream.love redirects to toonstream.one
    BASE_URL: str = "https://toonstream.one"
    USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # Outbound HTTP (seconds)
    REQUEST_TIMEOUT: float = 20.0
    PROBE_TIMEOUT: float = 8.0
    CANDIDATE_TIMEOUT: float = 8.0
    MAX_REDIRECTS: int = 5
    HTTP_RETRIES: int = 0

    # Extraction
    LANGUAGES: List[str] = ["Hindi", "Tamil", "Telugu", "English", "Japanese", "Urdu"]
    BLOCKED_PROVIDERS: List[str] = ["vidstreaming.xyz"]
    EMBED_MAX_CANDIDATES: int = 5
    BATCH_CONCURRENCY: int = 5
    PLAYER_NAME: str = "ToonStream Player"

    # Cache TTLs (seconds)
    CACHE_TTL_HOME: int = 1800
    CACHE_TTL_DETAIL: int = 3600
    CACHE_TTL_SEARCH: int = 600
    CACHE_TTL_CATEGORY: int = 1800
    CACHE_TTL_CATEGORIES: int = 7200
    CACHE_TTL_EPISODE: int = 1800
    CACHE_TTL_EMBED: int = 1800

    # Headless browser fallback
    BROWSER_FALLBACK: bool = False
    BROWSER_HEADLESS: bool = True
    BROWSER_TIMEOUT: float = 30.0
    BROWSER_MIN_LAUNCH_INTERVAL: float = 5.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def model_post_init(self, __context) -> None:
        base_url = self.BASE_URL.rstrip("/")
        if base_url != self.BASE_URL:
            object.__setattr__(self, "BASE_URL", base_url)
        if self.EMBED_MAX_CANDIDATES < 1:
            _logger.warning("EMBED_MAX_CANDIDATES must be at least 1, using 1")
            object.__setattr__(self, "EMBED_MAX_CANDIDATES", 1)


settings = Settings()
