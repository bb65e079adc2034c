"""Prometheus metrics for question generation."""

from prometheus_client import Counter, Histogram

provider_latency_ms = Histogram(
    "provider_latency_ms",
    "Provider call latency in milliseconds",
    ["outcome"],
    buckets=[100, 500, 1000, 2500, 5000, 10000, 20000, 40000, 60000],
)

provider_errors_total = Counter(
    "provider_errors_total",
    "Total failed provider calls",
    ["kind"],
)

credential_invalidations_total = Counter(
    "credential_invalidations_total",
    "Total credentials permanently invalidated",
)

questions_generated_total = Counter(
    "questions_generated_total",
    "Total normalized questions returned by the provider",
    ["difficulty"],
)

generation_sessions_total = Counter(
    "generation_sessions_total",
    "Total generation sessions by terminal status",
    ["status"],
)


class PrometheusGenerationMetrics:
    """Prometheus-based generation metrics implementation."""

    def record_latency(self, outcome: str, latency_ms: float) -> None:
        """Record provider call latency."""
        provider_latency_ms.labels(outcome=outcome).observe(latency_ms)

    def inc_error(self, kind: str) -> None:
        """Increment provider error counter."""
        provider_errors_total.labels(kind=kind).inc()

    def inc_invalidation(self) -> None:
        """Increment credential invalidation counter."""
        credential_invalidations_total.inc()

    def add_questions(self, difficulty: str, count: int) -> None:
        """Count questions produced for a chunk."""
        questions_generated_total.labels(difficulty=difficulty).inc(count)

    def inc_session(self, status: str) -> None:
        """Count a session reaching a terminal status."""
        generation_sessions_total.labels(status=status).inc()
