from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog

from .contracts import ChatTurn, CompletionRequest, CompletionResult, ProviderId, Role, TokenUsage
from .error_messages import DEFAULT_PREVIEW_CHARS, extract_error_message
from .errors import ConfigurationError, UnsupportedProviderError, UpstreamError, UpstreamProtocolError

log = structlog.get_logger()

DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.7


def request_timeout(timeout: float | None) -> Any:
    """Per-call deadline for httpx; ``None`` defers to the client's own setting."""
    return httpx.USE_CLIENT_DEFAULT if timeout is None else timeout


def header_credential(credential: str) -> str:
    """Credentials travel in HTTP headers, which only carry printable ASCII."""
    if not isinstance(credential, str) or not credential.isascii() or not credential.isprintable():
        raise ConfigurationError("Credential contains characters that cannot be sent in a header.")
    return credential


def normalize_turns(turns: tuple[ChatTurn, ...] | list[ChatTurn]) -> list[ChatTurn]:
    out: list[ChatTurn] = []
    for turn in turns:
        try:
            role = Role(turn.role)
        except ValueError as e:
            raise ConfigurationError(f"Unsupported turn role: {turn.role!r}") from e
        if not isinstance(turn.content, str):
            raise ConfigurationError("Turn content must be a string.")
        out.append(ChatTurn(role=role, content=turn.content))
    return out


def split_system(turns: list[ChatTurn]) -> tuple[str | None, list[ChatTurn]]:
    """Pull system text out of the turn list, keeping the remaining order intact."""
    system_parts: list[str] = []
    chat_turns: list[ChatTurn] = []
    for turn in turns:
        if turn.role is Role.SYSTEM:
            if turn.content:
                system_parts.append(turn.content)
            continue
        chat_turns.append(turn)
    system = "\n\n".join(system_parts).strip() or None
    return system, chat_turns


def _int_or_none(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


class ChatAdapter(ABC):
    provider: ProviderId

    @abstractmethod
    async def complete(self, request: CompletionRequest, *, timeout: float | None = None) -> CompletionResult:
        """Translate ``request`` to the backend's wire format and back."""


class HttpChatAdapter(ChatAdapter):
    """Shared POST / error-handling flow; subclasses own the three translations."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        endpoint: str,
        model: str,
        default_max_tokens: int = DEFAULT_MAX_TOKENS,
        default_temperature: float = DEFAULT_TEMPERATURE,
        error_preview_chars: int = DEFAULT_PREVIEW_CHARS,
    ):
        self._client = client
        self.endpoint = endpoint
        self.model = model
        self._default_max_tokens = default_max_tokens
        self._default_temperature = default_temperature
        self._error_preview_chars = error_preview_chars

    @abstractmethod
    def build_headers(self, credential: str) -> dict[str, str]: ...

    @abstractmethod
    def build_payload(self, request: CompletionRequest) -> dict[str, Any]: ...

    @abstractmethod
    def parse_response(self, status: int, data: Any) -> CompletionResult: ...

    def _generation_controls(self, request: CompletionRequest) -> tuple[int, float]:
        max_tokens = request.max_tokens if request.max_tokens is not None else self._default_max_tokens
        temperature = request.temperature if request.temperature is not None else self._default_temperature
        return max_tokens, temperature

    async def complete(self, request: CompletionRequest, *, timeout: float | None = None) -> CompletionResult:
        headers = self.build_headers(header_credential(request.credential))
        payload = self.build_payload(request)

        try:
            resp = await self._client.post(
                self.endpoint,
                headers=headers,
                json=payload,
                timeout=request_timeout(timeout),
            )
        except httpx.TimeoutException as e:
            raise UpstreamError(None, "Upstream request timed out.") from e
        except httpx.HTTPError as e:
            raise UpstreamError(None, f"Upstream request failed ({type(e).__name__}).") from e

        if not resp.is_success:
            message = extract_error_message(
                resp.status_code,
                resp.text,
                preview_chars=self._error_preview_chars,
            )
            log.warning(
                "completion_upstream_error",
                provider=self.provider.value,
                status_code=resp.status_code,
                error=message,
            )
            raise UpstreamError(resp.status_code, message)

        try:
            data = resp.json()
        except (ValueError, RecursionError) as e:
            raise UpstreamProtocolError(resp.status_code, "Upstream returned a non-JSON body.") from e

        result = self.parse_response(resp.status_code, data)
        log.debug(
            "completion_upstream_ok",
            provider=self.provider.value,
            model=self.model,
            turns=len(payload.get("messages", [])),
        )
        return result


class OpenAICompatibleAdapter(HttpChatAdapter):
    """Bearer auth, inline system turns, ``choices[0].message.content``.

    Serves OpenAI itself plus the Zhipu GLM and Qwen compatible-mode endpoints.
    """

    def __init__(self, provider: ProviderId, **kwargs: Any):
        super().__init__(**kwargs)
        self.provider = provider

    def build_headers(self, credential: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {credential}"}

    def build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        max_tokens, temperature = self._generation_controls(request)
        return {
            "model": self.model,
            "messages": [{"role": t.role.value, "content": t.content} for t in normalize_turns(request.turns)],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

    def parse_response(self, status: int, data: Any) -> CompletionResult:
        if not isinstance(data, dict):
            raise UpstreamProtocolError(status, "Upstream response is not a JSON object.")

        choices = data.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise UpstreamProtocolError(status, "Missing choices in upstream response.")

        message = choices[0].get("message")
        if not isinstance(message, dict):
            raise UpstreamProtocolError(status, "Missing message in upstream response.")

        content = message.get("content")
        if not isinstance(content, str):
            raise UpstreamProtocolError(status, "Missing text in upstream response.")

        usage = None
        raw_usage = data.get("usage")
        if isinstance(raw_usage, dict):
            prompt = _int_or_none(raw_usage.get("prompt_tokens"))
            completion = _int_or_none(raw_usage.get("completion_tokens"))
            if prompt is not None and completion is not None:
                usage = TokenUsage(input_tokens=prompt, output_tokens=completion)

        return CompletionResult(content=content, provider=self.provider, usage=usage)


class AnthropicAdapter(HttpChatAdapter):
    """``x-api-key`` plus version header; system text moves to a top-level field."""

    provider = ProviderId.ANTHROPIC

    def __init__(self, *, api_version: str = "2023-06-01", **kwargs: Any):
        super().__init__(**kwargs)
        self.api_version = api_version

    def build_headers(self, credential: str) -> dict[str, str]:
        return {"x-api-key": credential, "anthropic-version": self.api_version}

    def build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        max_tokens, temperature = self._generation_controls(request)
        system, chat_turns = split_system(normalize_turns(request.turns))
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": t.role.value, "content": t.content} for t in chat_turns],
        }
        if system:
            payload["system"] = system
        return payload

    def parse_response(self, status: int, data: Any) -> CompletionResult:
        if not isinstance(data, dict):
            raise UpstreamProtocolError(status, "Upstream response is not a JSON object.")

        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise UpstreamProtocolError(status, "Missing content in upstream response.")

        text = next(
            (
                b["text"]
                for b in blocks
                if isinstance(b, dict) and b.get("type") == "text" and isinstance(b.get("text"), str)
            ),
            None,
        )
        if text is None:
            raise UpstreamProtocolError(status, "Missing text in upstream response.")

        usage = None
        raw_usage = data.get("usage")
        if isinstance(raw_usage, dict):
            input_tokens = _int_or_none(raw_usage.get("input_tokens"))
            output_tokens = _int_or_none(raw_usage.get("output_tokens"))
            if input_tokens is not None and output_tokens is not None:
                usage = TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens)

        return CompletionResult(content=text, provider=self.provider, usage=usage)


class WenxinAdapter(ChatAdapter):
    """Reserved slot. ERNIE needs a signed access-token exchange, not a static header."""

    provider = ProviderId.WENXIN

    async def complete(self, request: CompletionRequest, *, timeout: float | None = None) -> CompletionResult:
        raise UnsupportedProviderError(
            self.provider.value,
            "Wenxin (ERNIE) requires signature-based authentication and is not supported yet; "
            "choose another provider.",
        )
