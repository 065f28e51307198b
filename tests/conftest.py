"""Shared test fixtures."""

import pytest
import respx
from fakes import BASE_URL, paged, pull_request


@pytest.fixture
def mock_bitbucket_api():
    """Fixture providing a respx mock router for the Bitbucket REST API."""
    with respx.mock(base_url=f"{BASE_URL}/rest") as respx_mock:
        yield respx_mock


@pytest.fixture
def sample_pull_requests_response():
    """Sample single page pull request listing."""
    return paged(
        [pull_request(101, "feature-ABC-123", "cb3cf2e4d1517c83e720d2585b9402dbef71f992")]
    )


@pytest.fixture
def sample_build_statuses():
    """Build statuses with one success, one failure and one running build."""
    return [
        {
            "key": "DOCKER-BUILD",
            "name": "DOCKER-BUILD #1",
            "state": "SUCCESSFUL",
            "url": "https://ci.example.com/docker/1",
        },
        {
            "key": "E2E",
            "name": "e2e",
            "state": "FAILED",
            "url": "https://ci.example.com/e2e/7",
        },
        {
            "key": "DOCS",
            "name": "docs",
            "state": "INPROGRESS",
            "url": "https://ci.example.com/docs/3",
        },
    ]


@pytest.fixture
def sample_commits_response():
    """Commits of a pull request, most recent first."""
    return paged(
        [
            {"id": "c3", "displayId": "c3", "message": "Fix tests"},
            {"id": "c2", "displayId": "c2", "message": "Add feature"},
            {"id": "c1", "displayId": "c1", "message": "Initial"},
        ]
    )
