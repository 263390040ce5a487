from .config import GatewayConfig
from .contracts import (
    ChatTurn,
    CompletionRequest,
    CompletionResult,
    Platform,
    PlatformMatch,
    ProviderId,
    ResourceDescriptor,
    Role,
    TokenUsage,
)
from .errors import (
    ConfigurationError,
    ProviderError,
    UnsupportedPlatformError,
    UnsupportedProviderError,
    UpstreamError,
    UpstreamProtocolError,
)
from .gateway import ProviderGateway
from .platforms import detect_platform
from .resolver import ResourceResolver

__all__ = [
    "ChatTurn",
    "CompletionRequest",
    "CompletionResult",
    "ConfigurationError",
    "GatewayConfig",
    "Platform",
    "PlatformMatch",
    "ProviderError",
    "ProviderGateway",
    "ProviderId",
    "ResourceDescriptor",
    "ResourceResolver",
    "Role",
    "TokenUsage",
    "UnsupportedPlatformError",
    "UnsupportedProviderError",
    "UpstreamError",
    "UpstreamProtocolError",
    "detect_platform",
]
