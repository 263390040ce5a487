import os
import time
from contextlib import asynccontextmanager

from .config import GatewayConfig
from .errors import (
    ConfigurationError,
    ProviderError,
    UnsupportedPlatformError,
    UnsupportedProviderError,
    UpstreamError,
)
from .gateway import ProviderGateway
from .http_security import install_middlewares
from .logging import configure_logging
from .metrics import maybe_start_metrics, server_errors_total, server_request_latency_seconds, server_requests_total
from .mood import analyze_mood, build_chat_request, build_insight_request
from .resolver import ResourceResolver
from .schemas import (
    CompletionBody,
    CompletionResponse,
    CredentialCheckBody,
    MoodAnalysisBody,
    MoodChatBody,
    MoodInsightBody,
    ResolveBody,
    make_completion_response,
    make_error_response,
)


def create_app(
    cfg: GatewayConfig | None = None,
    gateway: ProviderGateway | None = None,
    resolver: ResourceResolver | None = None,
):
    try:
        from fastapi import FastAPI, Request
        from fastapi.responses import JSONResponse
    except ImportError as e:  # pragma: no cover
        raise RuntimeError('Install the "server" extra: pip install -e ".[server]"') from e

    cfg = cfg or GatewayConfig()
    configure_logging(level=cfg.log_level, fmt=cfg.log_format)
    gateway = gateway or ProviderGateway(cfg)
    resolver = resolver or ResourceResolver(cfg)

    def _request_id(request) -> str | None:
        return getattr(getattr(request, "state", None), "request_id", None)

    def _observe(path: str, status_code: int, started_at: float) -> None:
        server_requests_total.labels(path=path, status=str(status_code)).inc()
        server_request_latency_seconds.labels(path=path).observe(max(0.0, time.monotonic() - started_at))

    def _error(request, status_code: int, error_type: str, message: str, upstream_status: int | None = None):
        server_errors_total.labels(type=error_type).inc()
        started_at = getattr(request.state, "started_at", None)
        _observe(request.url.path, status_code, started_at if started_at is not None else time.monotonic())
        return JSONResponse(
            status_code=status_code,
            content=make_error_response(
                message=message,
                type=error_type,
                code=_request_id(request),
                upstream_status=upstream_status,
            ),
        )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        maybe_start_metrics(enable=cfg.enable_metrics, bind=cfg.metrics_bind, port=cfg.metrics_port)
        try:
            yield
        finally:
            await gateway.close()
            await resolver.close()

    app = FastAPI(
        title="moodtune-gateway",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if cfg.enable_api_docs else None,
        redoc_url="/redoc" if cfg.enable_api_docs else None,
        openapi_url="/openapi.json" if cfg.enable_api_docs else None,
    )
    install_middlewares(app, cfg=cfg)

    @app.exception_handler(UnsupportedProviderError)
    async def _unsupported_provider_handler(request, exc: UnsupportedProviderError):
        return _error(request, 400, "unsupported_provider", str(exc))

    @app.exception_handler(UnsupportedPlatformError)
    async def _unsupported_platform_handler(request, exc: UnsupportedPlatformError):
        return _error(request, 400, "unsupported_platform", str(exc))

    @app.exception_handler(ConfigurationError)
    async def _config_error_handler(request, exc: ConfigurationError):
        return _error(request, 400, "invalid_request_error", str(exc))

    @app.exception_handler(UpstreamError)
    async def _upstream_error_handler(request, exc: UpstreamError):
        return _error(request, 502, "upstream_error", exc.message, upstream_status=exc.status)

    @app.exception_handler(ProviderError)
    async def _provider_error_handler(request, exc: ProviderError):
        return _error(request, 500, "api_error", str(exc))

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/v1/completions", response_model=CompletionResponse)
    async def completions(body: CompletionBody):
        started_at = time.monotonic()
        if len(body.turns) > cfg.max_turns:
            raise ConfigurationError("Too many turns.")
        if sum(len(t.content) for t in body.turns) > cfg.max_total_turn_chars:
            raise ConfigurationError("Turn content too large.")

        result = await gateway.complete(body.to_request())
        _observe("/v1/completions", 200, started_at)
        return make_completion_response(result)

    @app.post("/v1/credentials/verify")
    async def verify_credentials(body: CredentialCheckBody) -> dict[str, bool]:
        started_at = time.monotonic()
        await gateway.validate_credentials(body.provider, body.credential)
        _observe("/v1/credentials/verify", 200, started_at)
        return {"success": True}

    @app.post("/v1/mood/analyze")
    async def mood_analyze(body: MoodAnalysisBody):
        started_at = time.monotonic()
        analysis = await analyze_mood(gateway, body.provider, body.credential, body.text)
        _observe("/v1/mood/analyze", 200, started_at)
        return analysis.to_dict()

    @app.post("/v1/mood/chat")
    async def mood_chat(body: MoodChatBody) -> dict[str, str]:
        started_at = time.monotonic()
        if len(body.history) + 2 > cfg.max_turns:
            raise ConfigurationError("Too many turns.")
        request = build_chat_request(
            body.provider,
            body.credential,
            body.message,
            history=body.history_turns(),
            recent_moods=[m.model_dump() for m in body.recent_moods],
        )
        result = await gateway.complete(request)
        _observe("/v1/mood/chat", 200, started_at)
        return {"reply": result.content}

    @app.post("/v1/mood/insights")
    async def mood_insights(body: MoodInsightBody) -> dict[str, str]:
        started_at = time.monotonic()
        request = build_insight_request(
            body.provider,
            body.credential,
            [e.model_dump() for e in body.entries],
            body.period,
        )
        result = await gateway.complete(request)
        _observe("/v1/mood/insights", 200, started_at)
        return {"insight": result.content}

    async def _resolve(request, url: str):
        started_at = time.monotonic()
        descriptor = await resolver.resolve(url)
        if descriptor is None:
            return _error(request, 404, "not_found", "Could not resolve this link.")
        _observe("/v1/music/resolve", 200, started_at)
        return descriptor.to_dict()

    @app.post("/v1/music/resolve")
    async def music_resolve(request: Request, body: ResolveBody):
        return await _resolve(request, body.url)

    @app.get("/v1/music/resolve")
    async def music_resolve_get(request: Request, url: str):
        return await _resolve(request, url)

    return app


def main() -> None:  # pragma: no cover
    try:
        import uvicorn
    except ImportError as e:
        raise RuntimeError('Install the "server" extra: pip install -e ".[server]"') from e

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("moodtune_gateway.server:create_app", host=host, port=port, factory=True)


if __name__ == "__main__":  # pragma: no cover
    main()
