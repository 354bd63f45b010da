"""
Unit tests for application wiring and error mapping.
"""

from fastapi.testclient import TestClient

from main import create_app
from pepzi.core.exceptions import InvariantViolationError, PersistenceTimeoutError


def _client_with_failing_route(exc: Exception) -> TestClient:
    app = create_app()

    @app.get("/boom")
    async def boom():
        raise exc

    return TestClient(app, raise_server_exceptions=False)


def test_health_check():
    response = TestClient(create_app()).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_routers_are_mounted():
    paths = {route.path for route in create_app().routes}

    assert "/api/schedule/blocks/{block_id}" in paths
    assert "/api/schedule/allocate" in paths
    assert "/api/schedule/backlog" in paths
    assert "/api/goals/{goal_id}/progress" in paths
    assert "/api/constraints/feasibility" in paths


def test_persistence_timeout_maps_to_503():
    client = _client_with_failing_route(PersistenceTimeoutError("Data store did not respond in time"))

    response = client.get("/boom")

    assert response.status_code == 503
    assert response.json()["detail"] == "Data store did not respond in time"


def test_invariant_violation_maps_to_500():
    client = _client_with_failing_route(InvariantViolationError("Planner output failed validation"))

    response = client.get("/boom")

    assert response.status_code == 500
    assert response.json()["detail"] == "Planner output failed validation"
