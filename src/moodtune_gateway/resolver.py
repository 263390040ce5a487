from __future__ import annotations

from collections.abc import Iterable

import httpx
import structlog

from .config import GatewayConfig
from .contracts import Platform, ResourceDescriptor, unparseable_descriptor
from .errors import UnsupportedPlatformError
from .fetchers import NeteaseFetcher, PlatformFetcher, QQMusicFetcher, SpotifyFetcher
from .metrics import resolutions_total
from .platforms import detect_platform

log = structlog.get_logger()


def default_fetchers(cfg: GatewayConfig, client: httpx.AsyncClient) -> list[PlatformFetcher]:
    return [
        NeteaseFetcher(client, api_base=cfg.netease_api_base),
        QQMusicFetcher(),
        SpotifyFetcher(),
    ]


class ResourceResolver:
    """Turns an arbitrary music link into a :class:`ResourceDescriptor`.

    ``resolve`` distinguishes three outcomes:

    * unrecognised link -> descriptor tagged ``Platform.UNKNOWN`` with a sentinel title
    * recognised platform, no such record (or the lookup failed) -> ``None``
    * recognised platform, record found -> populated descriptor
    """

    def __init__(
        self,
        cfg: GatewayConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        fetchers: Iterable[PlatformFetcher] | None = None,
    ):
        self.cfg = cfg or GatewayConfig()
        self._client = client or httpx.AsyncClient(timeout=self.cfg.upstream_timeout_seconds)
        registered = fetchers if fetchers is not None else default_fetchers(self.cfg, self._client)
        self._fetchers: dict[Platform, PlatformFetcher] = {f.platform: f for f in registered}

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch(self, platform: Platform, native_id: str, *, timeout: float | None = None) -> ResourceDescriptor | None:
        fetcher = self._fetchers.get(platform)
        if platform is Platform.UNKNOWN or fetcher is None:
            raise UnsupportedPlatformError(platform.value)
        return await fetcher.fetch(native_id, timeout=timeout)

    async def resolve(self, url: str, *, timeout: float | None = None) -> ResourceDescriptor | None:
        match = detect_platform(url)
        if match is None:
            resolutions_total.labels(platform=Platform.UNKNOWN.value, outcome="unparseable").inc()
            log.info("resolve_unrecognized_link")
            return unparseable_descriptor(url if isinstance(url, str) else "")

        descriptor = await self.fetch(match.platform, match.native_id, timeout=timeout)
        outcome = "found" if descriptor is not None else "not_found"
        resolutions_total.labels(platform=match.platform.value, outcome=outcome).inc()
        log.info("resolve_done", platform=match.platform.value, native_id=match.native_id, outcome=outcome)
        return descriptor
