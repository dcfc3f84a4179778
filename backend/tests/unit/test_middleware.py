"""Tests for middleware functionality."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from mangasync.app import create_app
from mangasync.core.middleware import TRACE_HEADER


@pytest.fixture
def client() -> TestClient:
    """Create test client."""
    app = create_app()
    return TestClient(app)


def test_trace_id_header_added_to_response(client: TestClient) -> None:
    """Test that X-Trace-ID header is added to responses."""
    response = client.get("/api/")

    assert response.status_code == 200
    assert TRACE_HEADER in response.headers

    trace_id = response.headers[TRACE_HEADER]
    assert isinstance(trace_id, str)
    assert len(trace_id) == 32  # UUID4 hex = 32 characters


def test_trace_id_header_preserved(client: TestClient) -> None:
    """Test that an incoming X-Trace-ID header is preserved."""
    trace_id = "custom-trace-id-12345678901234567890123456789012"

    response = client.get("/api/", headers={TRACE_HEADER: trace_id})

    assert response.status_code == 200
    assert response.headers[TRACE_HEADER] == trace_id
    assert response.json()["trace_id"] == trace_id


def test_trace_id_consistent_across_request(client: TestClient) -> None:
    """Test that trace_id is consistent throughout a request."""
    response = client.get("/api/")

    assert response.headers[TRACE_HEADER] == response.json()["trace_id"]


def test_trace_id_different_for_each_request(client: TestClient) -> None:
    """Test that each request gets a different trace ID."""
    response1 = client.get("/api/")
    response2 = client.get("/api/")

    assert response1.headers[TRACE_HEADER] != response2.headers[TRACE_HEADER]


def test_trace_id_on_error_responses(client: TestClient) -> None:
    """Test that validation errors also carry a trace ID header."""
    response = client.post("/api/matching/run", json={"entries": "not-a-list"})

    assert response.status_code == 422
    assert TRACE_HEADER in response.headers
