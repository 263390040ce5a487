from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from .contracts import Platform, PlatformMatch


@dataclass(frozen=True)
class PlatformRule:
    platform: Platform
    pattern: re.Pattern[str]


# Evaluated top to bottom, first match wins. The bare ``songmid=`` rule is
# loose enough to hit other services' links, so it must stay after the
# host-anchored rules above it.
PLATFORM_RULES: tuple[PlatformRule, ...] = (
    # music.163.com/#/song?id=1, music.163.com/song?id=1, y.music.163.com/m/song?id=1
    PlatformRule(Platform.NETEASE, re.compile(r"music\.163\.com.*[?&]id=(\d+)")),
    # y.qq.com/n/ryqq/songDetail/001234567
    PlatformRule(Platform.QQMUSIC, re.compile(r"y\.qq\.com.*songDetail/(\w+)")),
    # i.y.qq.com/v8/playsong.html?songmid=001234567
    PlatformRule(Platform.QQMUSIC, re.compile(r"songmid=(\w+)")),
    # open.spotify.com/track/4uLU6hMCjMI75M1A2tKUQC
    PlatformRule(Platform.SPOTIFY, re.compile(r"open\.spotify\.com/track/(\w+)")),
)


def detect_platform(url: Any, rules: tuple[PlatformRule, ...] = PLATFORM_RULES) -> PlatformMatch | None:
    """Map a raw link to ``(platform, native id)``, or None when nothing matches."""
    if not isinstance(url, str) or not url:
        return None
    for rule in rules:
        m = rule.pattern.search(url)
        if m:
            return PlatformMatch(platform=rule.platform, native_id=m.group(1))
    return None
