"""Tests for API routes."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conftest import ScriptedCompletion, build_pipeline, happy_responses
from fastapi.testclient import TestClient
from sse_starlette.sse import EventSourceResponse

from marketseg.api import deps
from marketseg.api.routes.segmentation import stream_status
from marketseg.errors import ConfigError
from marketseg.main import app
from marketseg.services.cost_tracker import CostTracker
from marketseg.services.document_prefill import DocumentError
from marketseg.services.status_store import JobStore, StatusStore


@pytest.fixture
def stores():
    return {"status": StatusStore(), "jobs": JobStore(ttl_seconds=3600), "costs": CostTracker()}


@pytest.fixture
def responses():
    return happy_responses()


@pytest.fixture
def client(stores, responses, no_sleep):
    def pipeline():
        return build_pipeline(
            ScriptedCompletion(responses),
            status_store=stores["status"],
            cost_tracker=stores["costs"],
        )

    app.dependency_overrides[deps.get_pipeline] = pipeline
    app.dependency_overrides[deps.get_status_store] = lambda: stores["status"]
    app.dependency_overrides[deps.get_job_store] = lambda: stores["jobs"]
    app.dependency_overrides[deps.get_cost_tracker] = lambda: stores["costs"]
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "marketseg"
    assert data["version"] == "0.1.0"
    assert "timestamp" in data


def test_run_segmentation_returns_result(client, product_payload, stores):
    response = client.post("/api/segmentation", json=product_payload, headers={"x-session-id": "web-1"})

    assert response.status_code == 200
    data = response.json()
    assert set(data) >= {"marketAnalysis", "segments", "personas", "implementationRoadmap", "createdAt"}
    assert stores["status"].get("web-1").progress == 100


def test_invalid_product_input_is_rejected(client, product_payload):
    product_payload["customerProblems"] = ["too short"]
    product_payload["priceRangeMax"] = 1
    response = client.post("/api/segmentation", json=product_payload)
    assert response.status_code == 422


def test_failed_run_returns_error_and_costs(client, product_payload, responses):
    responses["Implementation Roadmap"] = "not a roadmap"

    response = client.post("/api/segmentation", json=product_payload)

    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "Failed to generate implementation roadmap. Please try again."
    assert data["costs"]["totalCost"] == 0
    assert "details" not in data


def test_failed_run_includes_details_in_development(client, product_payload, responses):
    responses["Implementation Roadmap"] = "not a roadmap"

    with patch("marketseg.api.routes.segmentation.settings") as mock_settings:
        mock_settings.is_development = True
        response = client.post("/api/segmentation", json=product_payload)

    assert response.status_code == 500
    assert response.json()["details"] == "Failed to parse roadmap response"


def test_background_job_can_be_polled(client, product_payload, stores):
    response = client.post("/api/segmentation/start", json=product_payload)
    assert response.status_code == 200
    job_id = response.json()["jobId"]

    poll = client.get("/api/segmentation/poll", params={"jobId": job_id})

    assert poll.status_code == 200
    data = poll.json()
    assert data["status"] == "completed"
    assert len(data["result"]["segments"]) == 7
    assert data["error"] is None
    assert "totalCost" in data["costs"]
    assert stores["status"].get(job_id).phase.value == "complete"


def test_failed_background_job_reports_error(client, product_payload, responses):
    responses["Query Generation"] = "no queries today"
    job_id = client.post("/api/segmentation/start", json=product_payload).json()["jobId"]

    data = client.get("/api/segmentation/poll", params={"jobId": job_id}).json()

    assert data["status"] == "error"
    assert data["result"] is None
    assert data["error"].startswith("Analysis failed: Query generation failed")


def test_poll_requires_job_id(client):
    assert client.get("/api/segmentation/poll").status_code == 400


def test_poll_unknown_job(client):
    assert client.get("/api/segmentation/poll", params={"jobId": "nope"}).status_code == 404


@pytest.mark.asyncio
async def test_status_route_streams_events():
    request = MagicMock()
    request.is_disconnected = AsyncMock(return_value=True)
    response = await stream_status(request, session_id="s", statuses=StatusStore())
    assert isinstance(response, EventSourceResponse)


def test_extract_document(client):
    with patch(
        "marketseg.api.routes.documents.extract_product_input",
        AsyncMock(return_value={"businessType": "b2b"}),
    ) as mock_extract:
        response = client.post(
            "/api/extract-document",
            files={"file": ("brief.txt", b"We sell workflow software to operations teams.", "text/plain")},
        )

    assert response.status_code == 200
    assert response.json() == {"extractedData": {"businessType": "b2b"}}
    assert mock_extract.await_args.args[1] == "brief.txt"


def test_extract_document_errors(client):
    files = {"file": ("brief.pdf", b"%PDF-1.4", "application/pdf")}
    with patch(
        "marketseg.api.routes.documents.extract_product_input",
        AsyncMock(side_effect=DocumentError("File appears to be empty.")),
    ):
        response = client.post("/api/extract-document", files=files)
    assert response.status_code == 400
    assert response.json()["detail"] == "File appears to be empty."

    with patch(
        "marketseg.api.routes.documents.extract_product_input",
        AsyncMock(side_effect=ConfigError("ANTHROPIC_API_KEY is not configured")),
    ):
        response = client.post("/api/extract-document", files=files)
    assert response.status_code == 500


def test_extract_document_requires_file(client):
    assert client.post("/api/extract-document").status_code == 400
