import logging

import pytest


@pytest.fixture(autouse=True)
def setup_logging(caplog):
    """Setup logging to capture logs in tests"""
    caplog.set_level(logging.INFO)
    yield


def request_logs(caplog):
    return [record for record in caplog.records if record.getMessage() == "Request completed"]


@pytest.mark.asyncio
async def test_request_logging(client, caplog):
    """Test that API requests are logged with correlation ID"""
    correlation_id = "test-correlation-id"
    response = await client.get(
        "/api/v1/health",
        headers={"X-Request-ID": correlation_id}
    )
    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == correlation_id

    records = [r for r in request_logs(caplog) if getattr(r, "request_id", None) == correlation_id]
    assert len(records) == 1

    record = records[0]
    assert record.method == "GET"
    assert record.path == "/api/v1/health"
    assert record.status_code == 200
    assert isinstance(record.duration_ms, float)


@pytest.mark.asyncio
async def test_request_id_generated(client, caplog):
    """Test that a correlation ID is generated when the client sends none"""
    response = await client.get("/api/v1/health")

    request_id = response.headers.get("X-Request-ID")
    assert request_id
    assert any(getattr(r, "request_id", None) == request_id for r in request_logs(caplog))


@pytest.mark.asyncio
async def test_error_responses_are_logged(client, caplog):
    """Test that failed requests are logged with their status"""
    response = await client.get("/api/v1/me")

    assert response.status_code == 401
    statuses = [r.status_code for r in request_logs(caplog) if r.path == "/api/v1/me"]
    assert statuses == [401]
