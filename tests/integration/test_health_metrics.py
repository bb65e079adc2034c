"""Integration tests for /health, /healthz and /metrics endpoints."""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from prometheus_client.parser import text_string_to_metric_families

from backend.app.config import Settings
from backend.app.db.inmemory import InMemoryQuestionStore
from backend.app.generation import service as service_module
from backend.app.generation.credentials import Credential, CredentialPool
from backend.app.generation.service import QuizGenerationService
from backend.app.generation.sessions import SessionRegistry
from backend.app.llm.client import DeterministicStubProvider
from backend.app.main import app
from backend.app.utils.metrics import PrometheusGenerationMetrics


def _samples(text: str) -> dict[tuple[str, tuple[tuple[str, str], ...]], float]:
    """Index exposition samples by name and sorted labels."""
    return {
        (sample.name, tuple(sorted(sample.labels.items()))): sample.value
        for family in text_string_to_metric_families(text)
        for sample in family.samples
    }


@pytest.fixture
def pool() -> CredentialPool:
    return CredentialPool(["k1", "k2", "k3"])


@pytest.fixture
def client(pool: CredentialPool, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    """Create test client over a service with a known credential pool."""
    service = QuizGenerationService(
        Settings(),
        pool,
        DeterministicStubProvider(),
        SessionRegistry(),
        InMemoryQuestionStore(),
    )
    monkeypatch.setattr(service_module, "_quiz_service", service)
    return TestClient(app)


class TestHealthEndpoint:
    """Test /healthz endpoint."""

    @patch("backend.app.api.routes.health.check_db")
    @patch("backend.app.api.routes.health.check_redis")
    def test_healthz_returns_200_when_all_ok(
        self,
        mock_check_redis: MagicMock,
        mock_check_db: MagicMock,
        client: TestClient,
    ) -> None:
        """Test /healthz returns 200 and pool status when DB and Redis are healthy."""
        mock_check_db.return_value = (True, "ok")
        mock_check_redis.return_value = (True, "ok")

        response = client.get("/healthz")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["components"]["db"] == "ok"
        assert data["components"]["redis"] == "ok"
        assert data["components"]["credentials"] == {"total": 3, "valid": 3, "invalid": 0}

    @patch("backend.app.api.routes.health.check_db")
    @patch("backend.app.api.routes.health.check_redis")
    def test_healthz_returns_503_when_db_fails(
        self,
        mock_check_redis: MagicMock,
        mock_check_db: MagicMock,
        client: TestClient,
    ) -> None:
        """Test /healthz returns 503 when DB check fails."""
        mock_check_db.return_value = (False, "connection refused")
        mock_check_redis.return_value = (True, "ok")

        response = client.get("/healthz")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["components"]["db"] == "connection refused"

    @patch("backend.app.api.routes.health.check_db")
    @patch("backend.app.api.routes.health.check_redis")
    def test_healthz_returns_503_when_redis_fails(
        self,
        mock_check_redis: MagicMock,
        mock_check_db: MagicMock,
        client: TestClient,
    ) -> None:
        """Test /healthz returns 503 when Redis check fails."""
        mock_check_db.return_value = (True, "ok")
        mock_check_redis.return_value = (False, "timeout")

        response = client.get("/healthz")

        assert response.status_code == 503
        assert response.json()["components"]["redis"] == "timeout"

    def test_healthz_reports_invalidated_credentials(
        self, client: TestClient, pool: CredentialPool
    ) -> None:
        """Test invalidated credentials show up without degrading health."""
        pool.invalidate(Credential(position=1, secret="k2"))

        response = client.get("/healthz")

        assert response.status_code == 200
        assert response.json()["components"]["credentials"] == {"total": 3, "valid": 2, "invalid": 1}

    def test_healthz_without_database_or_redis(self, client: TestClient) -> None:
        """Test unconfigured stores report in-memory and not_configured."""
        response = client.get("/healthz")

        components = response.json()["components"]
        assert components["db"] == "in_memory"
        assert components["redis"] == "not_configured"

    def test_health_always_ok(self, client: TestClient) -> None:
        """Test /health liveness endpoint."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestMetricsEndpoint:
    """Test /metrics endpoint."""

    def test_metrics_exposes_generation_metrics(self, client: TestClient) -> None:
        """Test /metrics returns Prometheus text including generation metrics."""
        metrics = PrometheusGenerationMetrics()
        metrics.record_latency("success", 120.0)
        metrics.inc_error("rate_limit")
        metrics.inc_invalidation()
        metrics.add_questions("medium", 4)
        metrics.inc_session("completed")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        samples = _samples(response.text)
        assert samples[("provider_latency_ms_bucket", (("le", "500.0"), ("outcome", "success")))] >= 1
        assert samples[("provider_errors_total", (("kind", "rate_limit"),))] >= 1
        assert samples[("credential_invalidations_total", ())] >= 1
        assert samples[("questions_generated_total", (("difficulty", "medium"),))] >= 4
        assert samples[("generation_sessions_total", (("status", "completed"),))] >= 1
