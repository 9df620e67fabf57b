from fastapi.testclient import TestClient

from src.api.main import app
from src.api.routers import financial_reports


def test_health_endpoints_available():
    with TestClient(app) as client:
        for prefix in ("", "/api/v1"):
            health = client.get(f"{prefix}/health")
            live = client.get(f"{prefix}/health/live")
            ready = client.get(f"{prefix}/health/ready")

            assert health.status_code == 200
            assert live.status_code == 200
            assert ready.status_code == 200
            assert health.json() == {"status": "ok"}
            assert live.json() == {"status": "live"}
            assert ready.json() == {"status": "ready"}


def test_metrics_endpoint_available():
    with TestClient(app) as client:
        client.get("/health")
        response = client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text or "http_request_duration" in response.text


def test_unhandled_errors_are_returned_as_problem_details():
    class _ExplodingService:
        def get_integrity(self, *, report_id: int):
            raise KeyError(report_id)

    app.dependency_overrides[financial_reports.get_financial_report_workflow_service] = (
        lambda: _ExplodingService()
    )
    try:
        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get("/financial-reports/42/integrity")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/problem+json")
    assert response.json()["instance"] == "/financial-reports/42/integrity"
