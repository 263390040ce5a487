import json

import httpx
import pytest

from moodtune_gateway.adapters import AnthropicAdapter, OpenAICompatibleAdapter, WenxinAdapter, split_system
from moodtune_gateway.contracts import ChatTurn, CompletionRequest, ProviderId, Role, TokenUsage
from moodtune_gateway.errors import (
    ConfigurationError,
    UnsupportedProviderError,
    UpstreamError,
    UpstreamProtocolError,
)


def _mock_transport(handler):
    return httpx.MockTransport(handler)


def _conversation(provider: ProviderId) -> CompletionRequest:
    return CompletionRequest(
        provider=provider,
        credential="sk-test",
        turns=(
            ChatTurn(Role.SYSTEM, "You are kind."),
            ChatTurn(Role.USER, "Hi"),
            ChatTurn(Role.ASSISTANT, "Hello"),
            ChatTurn(Role.USER, "How are you?"),
        ),
        max_tokens=50,
        temperature=0.2,
    )


def _openai(handler, provider: ProviderId = ProviderId.OPENAI) -> OpenAICompatibleAdapter:
    return OpenAICompatibleAdapter(
        provider,
        client=httpx.AsyncClient(transport=_mock_transport(handler)),
        endpoint="https://example.test/v1/chat/completions",
        model="gpt-4o-mini",
    )


def _anthropic(handler) -> AnthropicAdapter:
    return AnthropicAdapter(
        client=httpx.AsyncClient(transport=_mock_transport(handler)),
        endpoint="https://example.test/v1/messages",
        model="claude-3-5-sonnet-20241022",
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("provider", [ProviderId.OPENAI, ProviderId.ZHIPU, ProviderId.QWEN])
async def test_openai_compatible_keeps_system_inline_with_bearer_auth(provider):
    observed = {}

    def handler(request: httpx.Request) -> httpx.Response:
        observed["auth"] = request.headers.get("authorization")
        observed["body"] = json.loads(request.content.decode("utf-8"))
        return httpx.Response(
            200,
            json={
                "choices": [{"message": {"role": "assistant", "content": "fine"}}],
                "usage": {"prompt_tokens": 12, "completion_tokens": 3},
            },
        )

    adapter = _openai(handler, provider)
    result = await adapter.complete(_conversation(provider))

    assert observed["auth"] == "Bearer sk-test"
    body = observed["body"]
    assert body["model"] == "gpt-4o-mini"
    assert body["max_tokens"] == 50
    assert body["temperature"] == 0.2
    assert body["messages"] == [
        {"role": "system", "content": "You are kind."},
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello"},
        {"role": "user", "content": "How are you?"},
    ]
    assert "system" not in body
    assert result.content == "fine"
    assert result.provider is provider
    assert result.usage == TokenUsage(input_tokens=12, output_tokens=3)


@pytest.mark.asyncio
async def test_anthropic_extracts_system_and_uses_api_key_headers():
    observed = {}

    def handler(request: httpx.Request) -> httpx.Response:
        observed["headers"] = request.headers
        observed["body"] = json.loads(request.content.decode("utf-8"))
        return httpx.Response(
            200,
            json={
                "content": [{"type": "text", "text": "doing well"}],
                "usage": {"input_tokens": 20, "output_tokens": 4},
            },
        )

    result = await _anthropic(handler).complete(_conversation(ProviderId.ANTHROPIC))

    assert observed["headers"]["x-api-key"] == "sk-test"
    assert observed["headers"]["anthropic-version"] == "2023-06-01"
    assert "authorization" not in observed["headers"]
    body = observed["body"]
    assert body["system"] == "You are kind."
    assert body["messages"] == [
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello"},
        {"role": "user", "content": "How are you?"},
    ]
    assert result.content == "doing well"
    assert result.usage == TokenUsage(input_tokens=20, output_tokens=4)


@pytest.mark.asyncio
async def test_anthropic_omits_system_field_when_absent():
    observed = {}

    def handler(request: httpx.Request) -> httpx.Response:
        observed["body"] = json.loads(request.content.decode("utf-8"))
        return httpx.Response(200, json={"content": [{"type": "text", "text": "ok"}]})

    req = CompletionRequest(ProviderId.ANTHROPIC, "k", (ChatTurn(Role.USER, "hi"),))
    result = await _anthropic(handler).complete(req)

    assert "system" not in observed["body"]
    assert observed["body"]["max_tokens"] == 1000
    assert observed["body"]["temperature"] == 0.7
    assert result.usage is None


@pytest.mark.asyncio
async def test_only_first_candidate_text_is_returned():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "choices": [
                    {"message": {"content": "first"}},
                    {"message": {"content": "second"}},
                ]
            },
        )

    result = await _openai(handler).complete(_conversation(ProviderId.OPENAI))
    assert result.content == "first"
    assert result.usage is None


@pytest.mark.asyncio
async def test_anthropic_skips_non_text_blocks():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "content": [
                    {"type": "tool_use", "id": "t1"},
                    {"type": "text", "text": "one"},
                    {"type": "text", "text": "two"},
                ]
            },
        )

    result = await _anthropic(handler).complete(_conversation(ProviderId.ANTHROPIC))
    assert result.content == "one"


ADAPTER_FACTORIES = [
    pytest.param(_openai, ProviderId.OPENAI, id="openai-compatible"),
    pytest.param(_anthropic, ProviderId.ANTHROPIC, id="anthropic"),
]


@pytest.mark.asyncio
@pytest.mark.parametrize(("factory", "provider"), ADAPTER_FACTORIES)
@pytest.mark.parametrize(
    ("status", "body", "expected"),
    [
        (401, {"error": {"message": "bad key", "type": "auth"}}, "bad key"),
        (400, {"error": {"code": "1113"}}, "error code: 1113"),
        (403, {"message": "Access denied"}, "Access denied"),
    ],
)
async def test_structured_error_bodies_become_upstream_errors(factory, provider, status, body, expected):
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=body)

    with pytest.raises(UpstreamError) as exc:
        await factory(handler).complete(_conversation(provider))
    assert exc.value.status == status
    assert exc.value.message == expected


@pytest.mark.asyncio
@pytest.mark.parametrize(("factory", "provider"), ADAPTER_FACTORIES)
async def test_html_error_page_is_truncated(factory, provider):
    page = "<html><body>" + "Bad gateway " * 50 + "</body></html>"

    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text=page)

    with pytest.raises(UpstreamError) as exc:
        await factory(handler).complete(_conversation(provider))
    assert exc.value.status == 502
    assert exc.value.message == f"HTTP 502: {page[:100]}"


@pytest.mark.asyncio
@pytest.mark.parametrize(("factory", "provider"), ADAPTER_FACTORIES)
async def test_deeply_nested_error_body_falls_back_to_prefix(factory, provider):
    body = "[" * 200000

    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text=body)

    with pytest.raises(UpstreamError) as exc:
        await factory(handler).complete(_conversation(provider))
    assert exc.value.status == 500
    assert exc.value.message == f"HTTP 500: {body[:100]}"


@pytest.mark.asyncio
@pytest.mark.parametrize(("factory", "provider"), ADAPTER_FACTORIES)
async def test_deeply_nested_success_body_raises_protocol_error(factory, provider):
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="[" * 200000)

    with pytest.raises(UpstreamProtocolError) as exc:
        await factory(handler).complete(_conversation(provider))
    assert exc.value.status == 200


@pytest.mark.asyncio
@pytest.mark.parametrize(("factory", "provider"), ADAPTER_FACTORIES)
@pytest.mark.parametrize("credential", ["sk-密钥", "sk-ｋｅｙ", "sk-\nkey"])
async def test_credential_that_cannot_be_a_header_is_rejected_before_sending(factory, provider, credential):
    calls = {"n": 0}

    def handler(_: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(200, json={})

    req = CompletionRequest(provider, credential, (ChatTurn(Role.USER, "hi"),))
    with pytest.raises(ConfigurationError):
        await factory(handler).complete(req)
    assert calls["n"] == 0


@pytest.mark.asyncio
async def test_no_retry_on_server_error():
    calls = {"n": 0}

    def handler(_: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(503, text="overloaded")

    with pytest.raises(UpstreamError):
        await _openai(handler).complete(_conversation(ProviderId.OPENAI))
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_transport_failure_has_no_status():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(UpstreamError) as exc:
        await _openai(handler).complete(_conversation(ProviderId.OPENAI))
    assert exc.value.status is None


@pytest.mark.asyncio
async def test_timeout_is_reported_as_upstream_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(UpstreamError) as exc:
        await _anthropic(handler).complete(_conversation(ProviderId.ANTHROPIC), timeout=0.5)
    assert "timed out" in exc.value.message


@pytest.mark.asyncio
async def test_success_without_text_raises_protocol_error():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": []})

    with pytest.raises(UpstreamProtocolError) as exc:
        await _openai(handler).complete(_conversation(ProviderId.OPENAI))
    assert exc.value.status == 200


@pytest.mark.asyncio
async def test_non_json_success_raises_protocol_error():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="not json")

    with pytest.raises(UpstreamProtocolError):
        await _anthropic(handler).complete(_conversation(ProviderId.ANTHROPIC))


def test_unknown_role_is_rejected_before_sending():
    adapter = _openai(lambda _: httpx.Response(500))
    req = CompletionRequest(ProviderId.OPENAI, "k", (ChatTurn("tool", "x"),))
    with pytest.raises(ConfigurationError):
        adapter.build_payload(req)


def test_split_system_joins_multiple_system_turns():
    system, rest = split_system(
        [
            ChatTurn(Role.SYSTEM, "a"),
            ChatTurn(Role.USER, "u1"),
            ChatTurn(Role.SYSTEM, "b"),
            ChatTurn(Role.ASSISTANT, "a1"),
        ]
    )
    assert system == "a\n\nb"
    assert [t.content for t in rest] == ["u1", "a1"]


@pytest.mark.asyncio
async def test_wenxin_slot_fails_fast():
    with pytest.raises(UnsupportedProviderError) as exc:
        await WenxinAdapter().complete(_conversation(ProviderId.WENXIN))
    assert "signature" in str(exc.value)
