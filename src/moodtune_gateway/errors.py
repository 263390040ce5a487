from __future__ import annotations


class ProviderError(Exception):
    """Base error for gateway and resolver failures."""


class ConfigurationError(ProviderError):
    """Canonical request is unusable (no turns, unsupported role, text too short)."""


class UnsupportedProviderError(ProviderError):
    def __init__(self, provider: str, message: str | None = None):
        super().__init__(message or f"Unsupported provider: {provider!r}")
        self.provider = provider


class UnsupportedPlatformError(ProviderError):
    def __init__(self, platform: str, message: str | None = None):
        super().__init__(message or f"No fetcher registered for platform: {platform!r}")
        self.platform = platform


class UpstreamError(ProviderError):
    """Remote call failed. ``status`` is None when no HTTP response was received."""

    def __init__(self, status: int | None, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


class UpstreamProtocolError(UpstreamError):
    """Unexpected upstream response shape / contract mismatch."""
