"""Pytest configuration and shared fixtures."""

import os

# Keep per-IP limits out of the way of repeated test requests
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from src.listings.main import app  # noqa: E402


@pytest.fixture
def client() -> TestClient:
    """
    Provide FastAPI test client for API testing.

    Returns:
        TestClient instance for making API requests

    Example:
        >>> def test_health(client):
        >>>     response = client.get("/health")
        >>>     assert response.status_code == 200
    """
    return TestClient(app)
