from __future__ import annotations

import time

import httpx
import structlog

from .adapters import AnthropicAdapter, ChatAdapter, OpenAICompatibleAdapter, WenxinAdapter, normalize_turns
from .config import GatewayConfig
from .contracts import ChatTurn, CompletionRequest, CompletionResult, ProviderId, Role
from .errors import ConfigurationError, UnsupportedProviderError
from .metrics import completion_latency_seconds, completions_total

log = structlog.get_logger()

PROBE_PROMPT = 'Say "ok"'
PROBE_MAX_TOKENS = 5


def build_adapters(cfg: GatewayConfig, client: httpx.AsyncClient) -> dict[ProviderId, ChatAdapter]:
    common = {
        "client": client,
        "default_max_tokens": cfg.default_max_tokens,
        "default_temperature": cfg.default_temperature,
        "error_preview_chars": cfg.error_preview_chars,
    }
    return {
        ProviderId.OPENAI: OpenAICompatibleAdapter(
            ProviderId.OPENAI,
            endpoint=f"{cfg.openai_base_url.rstrip('/')}/chat/completions",
            model=cfg.openai_model,
            **common,
        ),
        ProviderId.ANTHROPIC: AnthropicAdapter(
            endpoint=f"{cfg.anthropic_base_url.rstrip('/')}/messages",
            model=cfg.anthropic_model,
            api_version=cfg.anthropic_version,
            **common,
        ),
        ProviderId.ZHIPU: OpenAICompatibleAdapter(
            ProviderId.ZHIPU,
            endpoint=f"{cfg.zhipu_base_url.rstrip('/')}/chat/completions",
            model=cfg.zhipu_model,
            **common,
        ),
        ProviderId.QWEN: OpenAICompatibleAdapter(
            ProviderId.QWEN,
            endpoint=f"{cfg.qwen_base_url.rstrip('/')}/chat/completions",
            model=cfg.qwen_model,
            **common,
        ),
        ProviderId.WENXIN: WenxinAdapter(),
    }


def coerce_provider(provider: ProviderId | str | None) -> ProviderId:
    if isinstance(provider, ProviderId):
        return provider
    try:
        return ProviderId(provider)
    except ValueError as e:
        raise UnsupportedProviderError(str(provider)) from e


class ProviderGateway:
    """Single entry point for chat completions across all configured backends."""

    def __init__(
        self,
        cfg: GatewayConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        adapters: dict[ProviderId, ChatAdapter] | None = None,
    ):
        self.cfg = cfg or GatewayConfig()
        self._client = client or httpx.AsyncClient(timeout=self.cfg.upstream_timeout_seconds)
        self._adapters = adapters if adapters is not None else build_adapters(self.cfg, self._client)

    async def close(self) -> None:
        await self._client.aclose()

    def adapter_for(self, provider: ProviderId | str | None) -> ChatAdapter:
        provider_id = coerce_provider(provider)
        adapter = self._adapters.get(provider_id)
        if adapter is None:
            raise UnsupportedProviderError(provider_id.value)
        return adapter

    async def complete(self, request: CompletionRequest, *, timeout: float | None = None) -> CompletionResult:
        adapter = self.adapter_for(request.provider)
        provider = adapter.provider.value

        turns = normalize_turns(request.turns)
        if not any(t.role is not Role.SYSTEM for t in turns):
            raise ConfigurationError("No user or assistant turn provided.")

        start = time.monotonic()
        try:
            with completion_latency_seconds.labels(provider=provider).time():
                result = await adapter.complete(request, timeout=timeout)
        except Exception as e:
            completions_total.labels(provider=provider, status="error").inc()
            log.warning("completion_failed", provider=provider, error_type=type(e).__name__, error=str(e))
            raise

        completions_total.labels(provider=provider, status="success").inc()
        log.info(
            "completion_ok",
            provider=provider,
            latency_seconds=round(time.monotonic() - start, 3),
            input_tokens=result.usage.input_tokens if result.usage else None,
            output_tokens=result.usage.output_tokens if result.usage else None,
        )
        return result

    async def validate_credentials(
        self,
        provider: ProviderId | str,
        credential: str,
        *,
        timeout: float | None = None,
    ) -> bool:
        """Send a tiny probe through the provider's adapter.

        Returns ``True`` when the backend accepts the credential; upstream
        failures propagate as ``UpstreamError`` with the extracted message.
        """
        probe = CompletionRequest(
            provider=provider,
            credential=credential,
            turns=(ChatTurn(role=Role.USER, content=PROBE_PROMPT),),
            max_tokens=PROBE_MAX_TOKENS,
        )
        await self.complete(probe, timeout=timeout)
        return True
