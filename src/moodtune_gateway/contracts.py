from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

UNPARSEABLE_TITLE = "unparseable link"
UNRESOLVABLE_TITLE = "not yet resolvable"
UNKNOWN_ARTIST = "unknown artist"
UNTITLED = "untitled"


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ProviderId(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    ZHIPU = "zhipu"
    QWEN = "qwen"
    # Reserved: signature-based auth, no adapter implementation.
    WENXIN = "wenxin"


class Platform(str, Enum):
    NETEASE = "netease"
    QQMUSIC = "qqmusic"
    SPOTIFY = "spotify"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ChatTurn:
    role: Role
    content: str


@dataclass(frozen=True)
class CompletionRequest:
    provider: ProviderId | str
    credential: str
    turns: tuple[ChatTurn, ...]
    max_tokens: int | None = None
    temperature: float | None = None

    def __repr__(self) -> str:
        # Keep the credential out of tracebacks and debug output.
        return (
            f"CompletionRequest(provider={self.provider!r}, credential='***', "
            f"turns={len(self.turns)}, max_tokens={self.max_tokens!r}, temperature={self.temperature!r})"
        )


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int
    output_tokens: int


@dataclass(frozen=True)
class CompletionResult:
    content: str
    provider: ProviderId
    usage: TokenUsage | None = None


@dataclass(frozen=True)
class PlatformMatch:
    platform: Platform
    native_id: str


@dataclass(frozen=True)
class ResourceDescriptor:
    title: str
    artist: str
    cover: str | None
    url: str
    platform: Platform

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["platform"] = self.platform.value
        return out


def unparseable_descriptor(url: str) -> ResourceDescriptor:
    return ResourceDescriptor(
        title=UNPARSEABLE_TITLE,
        artist="",
        cover=None,
        url=url,
        platform=Platform.UNKNOWN,
    )
