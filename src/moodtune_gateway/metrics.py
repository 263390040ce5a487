from __future__ import annotations

from prometheus_client import Counter, Histogram, start_http_server

server_requests_total = Counter(
    "server_requests_total",
    "Total HTTP requests handled by server",
    labelnames=["path", "status"],
)

server_request_latency_seconds = Histogram(
    "server_request_latency_seconds",
    "HTTP request latency (seconds)",
    buckets=[0.05, 0.1, 0.3, 0.5, 1, 2, 5, 10, 30, 60, 120],
    labelnames=["path"],
)

server_errors_total = Counter(
    "server_errors_total",
    "Total errors returned by server",
    labelnames=["type"],
)

completions_total = Counter(
    "gateway_completions_total",
    "Completion calls forwarded to a provider adapter",
    labelnames=["provider", "status"],
)

completion_latency_seconds = Histogram(
    "gateway_completion_latency_seconds",
    "Completion call latency",
    buckets=[0.1, 0.3, 0.5, 1, 2, 5, 10, 30, 60],
    labelnames=["provider"],
)

resolutions_total = Counter(
    "gateway_resolutions_total",
    "Music link resolutions by platform and outcome",
    labelnames=["platform", "outcome"],
)


def maybe_start_metrics(*, enable: bool, bind: str, port: int) -> None:
    if not enable:
        return
    start_http_server(port, addr=bind)
