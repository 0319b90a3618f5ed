"""Tests for episode streaming scraping and embed source resolution."""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest
from bs4 import BeautifulSoup

from errors import AggregateSourceError, ExtractionEmptyError, NotFoundError, UpstreamTimeoutError
from models import ContentType, SourceType
from streaming import (
    extract_player_url,
    first_success,
    is_redirect_page,
    parse_episode_streaming,
    resolve_embed_source,
    scrape_episode_streaming,
    scrape_server_link,
    streaming_probe_paths,
)

EPISODE_PAGE = """
<html><body>
  <h1 class="entry-title">Bleach 1x1</h1>
  <div class="video-player">
    <iframe src="about:blank" data-src="https://toonstream.one/home/?trembed=0&amp;trid=10&amp;trtype=2"></iframe>
    <iframe src="//cdn.example/embed/1"></iframe>
    <iframe src="//cdn.example/embed/1"></iframe>
    <video><source src="https://cdn.example/v.mp4" type="video/mp4" label="720p"></video>
  </div>
  <picture><source src="/wp-content/poster.webp"></picture>
  <div class="download-links">
    <a href="https://dl.example/file/bleach-1x1-720.mkv">Download 720p Hindi</a>
    <a href="#">x</a>
  </div>
  <select class="language-selector">
    <option value="hindi">Hindi</option>
    <option value="japanese">Japanese</option>
  </select>
  <ul class="server-list">
    <li><button data-server="s1">Server 1</button></li>
    <li><button data-server="s2">Server 2</button></li>
  </ul>
</body></html>
"""

SINGLE_SOURCE_PAGE = """
<html><body>
  <div class="video"><iframe src="https://toonstream.one/home/?trembed=0&amp;trid=99"></iframe></div>
</body></html>
"""

RACE_PAGE = """
<html><body>
  <iframe src="https://toonstream.one/home/?trembed=0&amp;trid=7"></iframe>
  <iframe src="https://toonstream.one/home/?trembed=1&amp;trid=7"></iframe>
  <iframe src="https://toonstream.one/home/?trembed=2&amp;trid=7"></iframe>
</body></html>
"""


def candidate(index: int) -> str:
    return f"https://toonstream.one/home/?trembed={index}&trid=7"


class TestProbePaths:
    def test_episode_slug_tries_episode_first(self):
        assert streaming_probe_paths("show-1x1") == ["episode", "series", "movies"]

    def test_plain_slug_tries_series_first(self):
        assert streaming_probe_paths("your-name") == ["series", "movies", "episode"]

    def test_hints(self):
        assert streaming_probe_paths("your-name", ContentType.MOVIE) == ["movies", "series", "episode"]
        assert streaming_probe_paths("ben-10-1x1", ContentType.CARTOON)[0] == "cartoons"


class TestParseEpisodeStreaming:
    def test_full_page(self):
        data = parse_episode_streaming(BeautifulSoup(EPISODE_PAGE, "html.parser"), "bleach-1x1")

        assert data.title == "Bleach 1x1"
        assert (data.season, data.episode) == (1, 1)
        assert [source.url for source in data.sources] == [
            "https://toonstream.one/home/?trembed=0&trid=10&trtype=2",
            "https://cdn.example/embed/1",
            "https://cdn.example/v.mp4",
        ]
        video = data.sources[2]
        assert video.type == SourceType.VIDEO
        assert video.quality == "720p"
        assert video.mime_type == "video/mp4"

        assert len(data.downloads) == 1
        assert data.downloads[0].quality == "720p"
        assert data.downloads[0].language == "Hindi"
        assert data.languages == ["Hindi", "Japanese"]
        assert [(s.id, s.name) for s in data.servers] == [("server-1", "Server 1"), ("server-2", "Server 2")]

    def test_empty_page(self):
        data = parse_episode_streaming(BeautifulSoup("<html><body></body></html>", "html.parser"), "movie")

        assert data.sources == []
        assert data.season is None and data.episode is None


class TestScrapeEpisodeStreaming:
    @pytest.mark.asyncio
    async def test_second_url_shape_after_404(self, upstream, http_client, cache):
        upstream.add("/series/show-1x1/", SINGLE_SOURCE_PAGE)

        data = await scrape_episode_streaming("show-1x1", http_client, cache)

        assert (data.season, data.episode) == (1, 1)
        assert len(data.sources) == 1
        assert data.sources[0].type == SourceType.IFRAME
        assert upstream.urls == [
            "https://toonstream.one/episode/show-1x1/",
            "https://toonstream.one/series/show-1x1/",
        ]
        assert cache.get("episode:show-1x1") is data

    @pytest.mark.asyncio
    async def test_no_sources_is_not_cached(self, upstream, http_client, cache):
        upstream.add("/episode/show-1x1/", "<html><body><h1>Show 1x1</h1></body></html>")

        data = await scrape_episode_streaming("show-1x1", http_client, cache)

        assert data.sources == []
        assert cache.get("episode:show-1x1") is None

    @pytest.mark.asyncio
    async def test_browser_fallback_when_static_page_has_no_sources(self, upstream, http_client, cache):
        upstream.add("/episode/show-1x1/", "<html><body><h1>Show 1x1</h1></body></html>")
        browser = AsyncMock()
        browser.fetch_html.return_value = SINGLE_SOURCE_PAGE

        data = await scrape_episode_streaming("show-1x1", http_client, cache, browser=browser)

        browser.fetch_html.assert_awaited_once_with("https://toonstream.one/episode/show-1x1/")
        assert len(data.sources) == 1

    @pytest.mark.asyncio
    async def test_not_found_everywhere(self, upstream, http_client, cache):
        with pytest.raises(NotFoundError, match="Failed to scrape episode streaming: Episode not found"):
            await scrape_episode_streaming("ghost-1x1", http_client, cache)

        assert len(upstream.requests) == 3

    @pytest.mark.asyncio
    async def test_server_link(self, upstream, http_client, cache):
        upstream.add("/episode/bleach-1x1/", EPISODE_PAGE)

        link = await scrape_server_link("bleach-1x1", "server-2", http_client, cache)

        assert link.server.name == "Server 2"
        assert len(link.sources) == 3
        assert cache.get("server:bleach-1x1:server-2") is link

        missing = await scrape_server_link("bleach-1x1", "server-9", http_client, cache)
        assert missing.server is None


class TestExtractPlayerUrl:
    def test_prefers_data_src_and_decodes_entities(self):
        html = '<div><iframe src="about:blank" data-src="https://player.example/e/1?a=1&amp;b=2"></iframe></div>'
        assert extract_player_url(html) == "https://player.example/e/1?a=1&b=2"

    def test_protocol_relative_src(self):
        assert extract_player_url("<IFRAME SRC='//player.example/e/2'>") == "https://player.example/e/2"

    def test_unquoted_src(self):
        html = "<iframe width=100% src=https://player.example/e/3?x=1 allowfullscreen></iframe>"
        assert extract_player_url(html) == "https://player.example/e/3?x=1"
        assert extract_player_url("<iframe data-src=//player.example/e/4>") == "https://player.example/e/4"

    def test_no_iframe(self):
        assert extract_player_url("<html><body>nothing</body></html>") is None
        assert extract_player_url("") is None

    def test_redirect_page_detection(self):
        assert is_redirect_page(candidate(0))
        assert is_redirect_page("https://other.example/trembed/1")
        assert not is_redirect_page("https://player.example/e/1")


class TestFirstSuccess:
    @pytest.mark.asyncio
    async def test_returns_first_success_and_cancels_rest(self):
        async def slow():
            await asyncio.sleep(10)
            return "slow"

        async def fails():
            raise ValueError("boom")

        async def fast():
            await asyncio.sleep(0)
            return "fast"

        slow_task = asyncio.ensure_future(slow())
        result = await first_success([slow_task, fails(), fast()])

        assert result == "fast"
        await asyncio.gather(slow_task, return_exceptions=True)
        assert slow_task.cancelled()

    @pytest.mark.asyncio
    async def test_all_fail(self):
        async def fails(message):
            raise ValueError(message)

        with pytest.raises(AggregateSourceError) as exc_info:
            await first_success([fails("a"), fails("b")], message="nothing worked")

        assert str(exc_info.value).startswith("nothing worked")
        assert sorted(str(e) for e in exc_info.value.errors) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_errors_follow_candidate_order(self):
        async def fails_after(delay, message):
            await asyncio.sleep(delay)
            raise ValueError(message)

        with pytest.raises(AggregateSourceError) as exc_info:
            await first_success([fails_after(0.05, "first"), fails_after(0, "second")], message="nothing worked")

        assert [str(e) for e in exc_info.value.errors] == ["first", "second"]
        assert str(exc_info.value) == "nothing worked (first; second)"


class TestResolveEmbedSource:
    @pytest.mark.asyncio
    async def test_race_skips_timeout_and_blocked_provider(self, upstream, http_client, cache):
        upstream.add("/episode/show-1x1/", RACE_PAGE)
        upstream.add(candidate(0), httpx.ReadTimeout("timed out"))
        upstream.add(candidate(1), '<iframe src="https://vidstreaming.xyz/e/abc"></iframe>')
        upstream.add(candidate(2), '<iframe src="about:blank" data-src="https://player.example/e/xyz"></iframe>')

        iframe_src = await resolve_embed_source("show-1x1", http_client, cache)

        assert iframe_src == "https://player.example/e/xyz"
        assert cache.get("embed:show-1x1:auto") == "https://player.example/e/xyz"

    @pytest.mark.asyncio
    async def test_candidates_use_episode_referer(self, upstream, http_client, cache):
        upstream.add("/episode/show-1x1/", SINGLE_SOURCE_PAGE)
        upstream.add(
            "https://toonstream.one/home/?trembed=0&trid=99",
            '<iframe src="https://player.example/e/1"></iframe>',
        )

        await resolve_embed_source("show-1x1", http_client, cache)

        player_request = upstream.requests[-1]
        assert player_request.headers["Referer"] == "https://toonstream.one/episode/show-1x1/"

    @pytest.mark.asyncio
    async def test_cached_result_skips_network(self, upstream, http_client, cache):
        cache.set("embed:show-1x1:movie", "https://player.example/e/cached", 60)

        iframe_src = await resolve_embed_source("show-1x1", http_client, cache, ContentType.MOVIE)

        assert iframe_src == "https://player.example/e/cached"
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_all_candidates_fail(self, upstream, http_client, cache):
        upstream.add("/episode/show-1x1/", RACE_PAGE)
        upstream.add(candidate(0), httpx.ReadTimeout("timed out"))
        upstream.add(candidate(1), '<iframe src="https://vidstreaming.xyz/e/abc"></iframe>')
        upstream.add(candidate(2), "<html><body>no player</body></html>")

        with pytest.raises(AggregateSourceError) as exc_info:
            await resolve_embed_source("show-1x1", http_client, cache)

        assert len(exc_info.value.errors) == 3
        assert any(isinstance(e, UpstreamTimeoutError) for e in exc_info.value.errors)
        assert cache.get("embed:show-1x1:auto") is None

    @pytest.mark.asyncio
    async def test_no_sources(self, upstream, http_client, cache):
        upstream.add("/episode/show-1x1/", "<html><body></body></html>")

        with pytest.raises(ExtractionEmptyError):
            await resolve_embed_source("show-1x1", http_client, cache)

    @pytest.mark.asyncio
    async def test_direct_source_needs_no_extra_fetch(self, upstream, http_client, cache):
        upstream.add("/episode/show-1x1/", '<iframe src="https://player.example/e/direct"></iframe>')

        iframe_src = await resolve_embed_source("show-1x1", http_client, cache)

        assert iframe_src == "https://player.example/e/direct"
        assert len(upstream.requests) == 1
