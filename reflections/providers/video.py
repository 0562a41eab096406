"""
HTTP client for the YouTube Data API v3 search endpoint.

Finds the most-viewed video published in the last week for a keyword.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import httpx

logger = logging.getLogger(__name__)

YOUTUBE_API_URL = "https://www.googleapis.com/youtube/v3"
DEFAULT_TIMEOUT = 15.0


class VideoSearchError(Exception):
    """Error communicating with the video search API."""


class YouTubeVideoSearch:
    """Keyword search against YouTube, one result per query."""

    def __init__(
        self,
        api_key: str,
        *,
        window_days: int = 7,
        api_url: str = YOUTUBE_API_URL,
        transport: httpx.BaseTransport | None = None,
    ):
        if not api_key:
            raise ValueError("YouTube API key required")
        self._api_key = api_key
        self._window = timedelta(days=window_days)
        self._client = httpx.Client(
            base_url=api_url.rstrip("/"),
            timeout=DEFAULT_TIMEOUT,
            transport=transport,
        )

    def search(self, keyword: str) -> dict | None:
        """GET /search -> {title, thumbnail, url} for the top video, or None."""
        published_after = (datetime.now(timezone.utc) - self._window).strftime("%Y-%m-%dT%H:%M:%SZ")
        params = {
            "part": "snippet",
            "q": keyword,
            "type": "video",
            "maxResults": 1,
            "order": "viewCount",
            "publishedAfter": published_after,
            "key": self._api_key,
        }
        try:
            resp = self._client.get("/search", params=params)
            resp.raise_for_status()
            items = resp.json().get("items") or []
        except httpx.HTTPStatusError as e:
            raise VideoSearchError(
                f"Video search rejected: {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise VideoSearchError(f"Video search failed: {e}") from e

        if not items:
            return None
        item = items[0]
        video_id = (item.get("id") or {}).get("videoId")
        if not video_id:
            return None
        snippet = item.get("snippet") or {}
        thumbnail = ((snippet.get("thumbnails") or {}).get("high") or {}).get("url", "")
        return {
            "title": snippet.get("title", ""),
            "thumbnail": thumbnail,
            "url": f"https://www.youtube.com/watch?v={video_id}",
        }

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()
