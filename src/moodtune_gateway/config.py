from __future__ import annotations

import os

from pydantic import BaseModel, Field


def _parse_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def _optional_float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    return float(value)


class GatewayConfig(BaseModel):
    # Completion backends
    openai_base_url: str = Field(
        default_factory=lambda: os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    )
    openai_model: str = Field(default_factory=lambda: os.getenv("OPENAI_MODEL", "gpt-4o-mini"))
    anthropic_base_url: str = Field(
        default_factory=lambda: os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com/v1")
    )
    anthropic_model: str = Field(
        default_factory=lambda: os.getenv("ANTHROPIC_MODEL", "claude-3-5-sonnet-20241022")
    )
    anthropic_version: str = Field(default_factory=lambda: os.getenv("ANTHROPIC_VERSION", "2023-06-01"))
    zhipu_base_url: str = Field(
        default_factory=lambda: os.getenv("ZHIPU_BASE_URL", "https://open.bigmodel.cn/api/paas/v4")
    )
    zhipu_model: str = Field(default_factory=lambda: os.getenv("ZHIPU_MODEL", "glm-4-flash"))
    qwen_base_url: str = Field(
        default_factory=lambda: os.getenv(
            "QWEN_BASE_URL", "https://dashscope.aliyuncs.com/compatible-mode/v1"
        )
    )
    qwen_model: str = Field(default_factory=lambda: os.getenv("QWEN_MODEL", "qwen-plus"))

    default_max_tokens: int = Field(default_factory=lambda: int(os.getenv("DEFAULT_MAX_TOKENS", "1000")))
    default_temperature: float = Field(
        default_factory=lambda: float(os.getenv("DEFAULT_TEMPERATURE", "0.7"))
    )
    error_preview_chars: int = Field(default_factory=lambda: int(os.getenv("ERROR_PREVIEW_CHARS", "100")))

    # Music catalogs
    netease_api_base: str = Field(
        default_factory=lambda: os.getenv("NETEASE_API_BASE", "https://music.163.com/api")
    )

    # Outbound HTTP. Unset means no deadline; callers pass their own per call.
    upstream_timeout_seconds: float | None = Field(
        default_factory=lambda: _optional_float(os.getenv("UPSTREAM_TIMEOUT_SECONDS"))
    )

    # Observability
    enable_metrics: bool = Field(
        default_factory=lambda: os.getenv("ENABLE_METRICS", "false").lower() == "true"
    )
    metrics_bind: str = Field(default_factory=lambda: os.getenv("METRICS_BIND", "127.0.0.1"))
    metrics_port: int = Field(default_factory=lambda: int(os.getenv("METRICS_PORT", "9109")))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_format: str = Field(default_factory=lambda: os.getenv("LOG_FORMAT", "json"))

    # HTTP surface
    enable_api_docs: bool = Field(
        default_factory=lambda: os.getenv("ENABLE_API_DOCS", "false").lower() == "true"
    )
    allowed_hosts: list[str] = Field(default_factory=lambda: _parse_csv(os.getenv("ALLOWED_HOSTS")))
    cors_allow_origins: list[str] = Field(default_factory=lambda: _parse_csv(os.getenv("CORS_ALLOW_ORIGINS")))
    cors_allow_credentials: bool = Field(
        default_factory=lambda: os.getenv("CORS_ALLOW_CREDENTIALS", "false").lower() == "true"
    )
    max_request_body_bytes: int = Field(
        default_factory=lambda: int(os.getenv("MAX_REQUEST_BODY_BYTES", str(1024 * 1024)))
    )
    max_turns: int = Field(default_factory=lambda: int(os.getenv("MAX_TURNS", "64")))
    max_total_turn_chars: int = Field(
        default_factory=lambda: int(os.getenv("MAX_TOTAL_TURN_CHARS", "20000"))
    )
