from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from csv_relay import __version__
from csv_relay.api.app import app
from csv_relay.core.config import get_settings
from tests.conftest import MockSettings

pytestmark = [pytest.mark.integration]


@pytest.fixture
def client(mock_settings: MockSettings) -> TestClient:
    """Provides a TestClient instance with overridden settings."""
    app.dependency_overrides[get_settings] = lambda: mock_settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health_endpoint(client: TestClient, mock_settings: MockSettings) -> None:
    """
    Tests the /health endpoint.
    It should return 200 OK with status 'ok' and commit_sha.
    """
    mock_settings.commit_sha = "test-commit-sha"

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "commit_sha": "test-commit-sha"}


def test_health_endpoint_without_commit_sha(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "commit_sha": "unknown"}


def test_version_endpoint(client: TestClient, mock_settings: MockSettings) -> None:
    """
    Tests the /version endpoint.
    It reports the package version, the commit and the validation window.
    """
    mock_settings.commit_sha = "another-commit-sha"
    mock_settings.validation_bytes = 256

    response = client.get("/version")

    assert response.status_code == 200
    assert response.json() == {
        "version": __version__,
        "commit_sha": "another-commit-sha",
        "validation_bytes": 256,
    }


def test_metrics_endpoint_exposes_upload_counters(client: TestClient) -> None:
    client.post(
        "/upload",
        files={"file": ("data.csv", b"id,name\n1,Alice\n", "text/csv")},
    )

    response = client.get("/metrics/")

    assert response.status_code == 200
    assert "csv_relay_upload_outcomes_total" in response.text
    assert 'outcome="accepted"' in response.text
    assert "csv_relay_relayed_bytes_total" in response.text


def test_openapi_describes_multipart_upload(client: TestClient) -> None:
    schema = client.get("/openapi.json").json()

    upload = schema["paths"]["/upload"]["post"]
    assert "multipart/form-data" in upload["requestBody"]["content"]
