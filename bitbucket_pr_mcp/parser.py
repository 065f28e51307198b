"""URL parsing utilities for Bitbucket Server repository URLs."""

import re
from dataclasses import dataclass
from urllib.parse import urlparse

# Regex pattern for Bitbucket Server repository paths, after any context path
BITBUCKET_REPO_PATTERN = re.compile(
    r"^(?P<context>.*?)/(?P<scope>projects|users)/(?P<key>[^/]+)"
    r"/repos/(?P<slug>[^/]+)(?:/.*)?$"
)


@dataclass(frozen=True)
class RepositoryReference:
    """Immutable reference to a Bitbucket Server repository."""

    base_url: str
    project_key: str
    repo_slug: str


def parse_repo_url(url: str) -> RepositoryReference:
    """
    Parse a Bitbucket Server repository URL into its components.

    Args:
        url: A repository URL as shown in the browser
            (e.g., https://bitbucket.example.com/projects/PROJ/repos/repo/browse)

    Returns:
        RepositoryReference with base URL, project key and repository slug

    Raises:
        ValueError: If URL is not a valid Bitbucket repository URL
    """
    parsed = urlparse(url)

    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Not an HTTP URL: {url}")

    match = BITBUCKET_REPO_PATTERN.match(parsed.path)
    if not match:
        raise ValueError(f"Not a valid repository URL format: {url}")

    project_key = match.group("key")
    if match.group("scope") == "users":
        # Personal repositories live under the ~USER project
        project_key = f"~{project_key.upper()}"

    return RepositoryReference(
        base_url=f"{parsed.scheme}://{parsed.netloc}{match.group('context')}",
        project_key=project_key,
        repo_slug=match.group("slug"),
    )
