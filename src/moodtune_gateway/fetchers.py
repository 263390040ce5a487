from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog

from .adapters import request_timeout
from .contracts import UNKNOWN_ARTIST, UNRESOLVABLE_TITLE, UNTITLED, Platform, ResourceDescriptor

log = structlog.get_logger()

NETEASE_API_BASE = "https://music.163.com/api"
# The song detail endpoint rejects requests that do not look like a browser.
NETEASE_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Referer": "https://music.163.com/",
}
ARTIST_SEPARATOR = " / "


class PlatformFetcher(ABC):
    platform: Platform

    @abstractmethod
    async def fetch(self, native_id: str, *, timeout: float | None = None) -> ResourceDescriptor | None:
        """Look up one catalog record; None when the record is missing or unreachable."""


class NeteaseFetcher(PlatformFetcher):
    platform = Platform.NETEASE

    def __init__(self, client: httpx.AsyncClient, *, api_base: str = NETEASE_API_BASE):
        self._client = client
        self._api_base = api_base.rstrip("/")

    @staticmethod
    def song_url(song_id: str) -> str:
        return f"https://music.163.com/#/song?id={song_id}"

    async def fetch(self, native_id: str, *, timeout: float | None = None) -> ResourceDescriptor | None:
        url = f"{self._api_base}/song/detail/"
        try:
            resp = await self._client.get(
                url,
                params={"ids": f"[{native_id}]"},
                headers=NETEASE_HEADERS,
                timeout=request_timeout(timeout),
            )
            if not resp.is_success:
                log.warning("netease_http_error", song_id=native_id, status_code=resp.status_code)
                return None
            data = resp.json()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log.warning("netease_request_failed", song_id=native_id[:32], error_type=type(e).__name__)
            return None
        except (ValueError, RecursionError):
            log.warning("netease_bad_json", song_id=native_id[:32])
            return None

        return self._parse_song(native_id, data)

    def _parse_song(self, song_id: str, data: Any) -> ResourceDescriptor | None:
        songs = data.get("songs") if isinstance(data, dict) else None
        if not isinstance(songs, list) or not songs or not isinstance(songs[0], dict):
            log.info("netease_song_not_found", song_id=song_id)
            return None
        song = songs[0]

        name = song.get("name")
        title = name.strip() if isinstance(name, str) and name.strip() else UNTITLED

        artists = song.get("artists")
        names = [
            a["name"]
            for a in (artists if isinstance(artists, list) else [])
            if isinstance(a, dict) and isinstance(a.get("name"), str) and a["name"]
        ]
        artist = ARTIST_SEPARATOR.join(names) or UNKNOWN_ARTIST

        album = song.get("album")
        cover = album.get("picUrl") if isinstance(album, dict) else None
        if not isinstance(cover, str) or not cover:
            cover = None

        return ResourceDescriptor(
            title=title,
            artist=artist,
            cover=cover,
            url=self.song_url(song_id),
            platform=self.platform,
        )


class QQMusicFetcher(PlatformFetcher):
    """Placeholder: the QQ Music song API needs a signed request flow."""

    platform = Platform.QQMUSIC

    async def fetch(self, native_id: str, *, timeout: float | None = None) -> ResourceDescriptor | None:
        return ResourceDescriptor(
            title=UNRESOLVABLE_TITLE,
            artist=UNKNOWN_ARTIST,
            cover=None,
            url=f"https://y.qq.com/n/ryqq/songDetail/{native_id}",
            platform=self.platform,
        )


class SpotifyFetcher(PlatformFetcher):
    """Placeholder: track lookups require an OAuth client-credentials token."""

    platform = Platform.SPOTIFY

    async def fetch(self, native_id: str, *, timeout: float | None = None) -> ResourceDescriptor | None:
        return ResourceDescriptor(
            title="Spotify track",
            artist="",
            cover=None,
            url=f"https://open.spotify.com/track/{native_id}",
            platform=self.platform,
        )
