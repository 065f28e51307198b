"""Bitbucket Server REST client for pull request discovery."""

import logging
import os
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .models import BuildStatus, CommitRecord, Page, PullRequestCandidate

logger = logging.getLogger(__name__)

PAGE_SIZE = 100

M = TypeVar("M", bound=BaseModel)


class RetrievalError(Exception):
    """Raised when a page of a Bitbucket resource cannot be fetched or parsed."""

    def __init__(self, message: str, resource: str, status_code: int | None = None):
        super().__init__(message)
        self.resource = resource
        self.status_code = status_code


class BitbucketClient:
    """Synchronous client for the Bitbucket Server REST API."""

    def __init__(
        self,
        base_url: str,
        username: str | None = None,
        password: str | None = None,
        from_env: bool = True,
    ):
        base_url = base_url.rstrip("/")
        if not base_url.endswith("/rest"):
            base_url += "/rest"
        self.base_url = base_url
        if from_env:
            username = username or os.environ.get("BITBUCKET_USERNAME")
            password = password or os.environ.get("BITBUCKET_PASSWORD")
        self.username = username
        self.password = password
        self._client: httpx.Client | None = None

    @property
    def headers(self) -> dict[str, str]:
        """Return headers for API requests."""
        # Bypass the XSRF check
        return {
            "Accept": "application/json",
            "X-Atlassian-Token": "no-check",
            "X-Requested-With": "XMLHttpRequest",
        }

    @property
    def is_authenticated(self) -> bool:
        """Check if client sends basic auth credentials."""
        return bool(self.username and self.password)

    @property
    def is_open(self) -> bool:
        return self._client is not None

    def __enter__(self) -> "BitbucketClient":
        auth = (self.username, self.password) if self.is_authenticated else None
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=self.headers,
            auth=auth,
            timeout=30.0,
        )
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    def _request(self, resource: str, path: str, **kwargs: Any) -> Any:
        """Make a GET request, raising RetrievalError on any failure."""
        if not self._client:
            raise RuntimeError("Client not initialized. Use context manager.")

        logger.debug("GET %s params=%s", path, kwargs.get("params"))
        try:
            response = self._client.get(path, **kwargs)
        except httpx.HTTPError as e:
            raise RetrievalError(f"error listing {resource}: {e}", resource) from e

        if response.status_code >= 400:
            raise RetrievalError(
                f"error listing {resource}: HTTP {response.status_code} {response.text}",
                resource,
                response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise RetrievalError(
                f"error parsing {resource} response: {e}",
                resource,
                response.status_code,
            ) from e

    def _get_page(
        self,
        model: type[M],
        resource: str,
        path: str,
        start: int | None,
    ) -> Page[M]:
        params: dict[str, int] = {"limit": PAGE_SIZE}
        if start is not None:
            params["start"] = start
        data = self._request(resource, path, params=params)
        try:
            return Page[model].model_validate(data)
        except ValidationError as e:
            raise RetrievalError(
                f"error parsing {resource} response: {e}", resource
            ) from e

    def fetch_pull_requests_page(
        self, project_key: str, repo_slug: str, start: int | None = None
    ) -> Page[PullRequestCandidate]:
        """Get one page of open pull requests."""
        return self._get_page(
            PullRequestCandidate,
            f"pull requests for {project_key}/{repo_slug}",
            f"/api/1.0/projects/{project_key}/repos/{repo_slug}/pull-requests",
            start,
        )

    def fetch_build_statuses_page(
        self, commit_id: str, start: int | None = None
    ) -> Page[BuildStatus]:
        """Get one page of build statuses for a commit."""
        return self._get_page(
            BuildStatus,
            f"build statuses for {commit_id}",
            f"/build-status/1.0/commits/{commit_id}",
            start,
        )

    def fetch_pull_request_commits_page(
        self,
        project_key: str,
        repo_slug: str,
        pull_request_id: int,
        start: int | None = None,
    ) -> Page[CommitRecord]:
        """Get one page of commits of a pull request."""
        return self._get_page(
            CommitRecord,
            f"pull request commits for {project_key}/{repo_slug} PR: {pull_request_id}",
            f"/api/1.0/projects/{project_key}/repos/{repo_slug}"
            f"/pull-requests/{pull_request_id}/commits",
            start,
        )
