"""FastMCP server for Bitbucket Server pull request discovery."""

import logging
from collections.abc import Callable
from typing import Any

from fastmcp import FastMCP

from bitbucket_pr_mcp.client import BitbucketClient, RetrievalError
from bitbucket_pr_mcp.models import DiscoveryConfig
from bitbucket_pr_mcp.parser import parse_repo_url
from bitbucket_pr_mcp.policy import ConfigurationError
from bitbucket_pr_mcp.service import PullRequestLister

logger = logging.getLogger(__name__)

mcp = FastMCP("Bitbucket PR Discovery")


def list_pull_requests_impl(
    repo_url: str,
    branch_match: str | None = None,
    successful_builds: list[str] | None = None,
    find_latest_successful: bool = False,
    client_factory: Callable[[str], BitbucketClient] = BitbucketClient,
) -> dict[str, Any]:
    """
    List open pull requests of a Bitbucket Server repository.

    Args:
        repo_url: Repository URL (e.g., https://bitbucket.example.com/projects/PROJ/repos/repo)
        branch_match: Only keep PRs whose source branch matches this regexp
        successful_builds: Build name regexps that must be green on the head
            commit. Omit to skip build checks, pass [] to require all builds.
        find_latest_successful: Fall back to the latest green commit of the
            PR instead of skipping it when its head is not green

    Returns:
        Pull requests with number, branch and head SHA, or an error.
    """
    try:
        ref = parse_repo_url(repo_url)
    except ValueError as e:
        return {"success": False, "reason": "invalid_url", "error": str(e)}

    config = DiscoveryConfig(
        branch_match=branch_match,
        successful_builds=successful_builds,
        find_latest_successful=find_latest_successful,
    )

    client = client_factory(ref.base_url)
    try:
        lister = PullRequestLister(client, ref.project_key, ref.repo_slug, config)
    except ConfigurationError as e:
        return {"success": False, "reason": "invalid_config", "error": str(e)}

    try:
        with client:
            auth_status = "authenticated" if client.is_authenticated else "anonymous"
            logger.debug("Connected to %s (%s)", ref.base_url, auth_status)
            pull_requests = lister.list()
    except RetrievalError as e:
        return {
            "success": False,
            "reason": "retrieval_error",
            "error": str(e),
            "resource": e.resource,
            "status_code": e.status_code,
        }

    return {
        "success": True,
        "count": len(pull_requests),
        "pull_requests": [pr.model_dump() for pr in pull_requests],
    }


@mcp.tool
def list_pull_requests(
    repo_url: str,
    branch_match: str | None = None,
    successful_builds: list[str] | None = None,
    find_latest_successful: bool = False,
) -> dict[str, Any]:  # pragma: no cover
    """
    List open pull requests of a Bitbucket Server repository.

    Pull requests can be restricted to branches matching a regexp and to
    head commits whose builds are green. With find_latest_successful, a PR
    whose head is not green is reported with its latest green commit.

    Args:
        repo_url: Repository URL (e.g., https://bitbucket.example.com/projects/PROJ/repos/repo)
        branch_match: Only keep PRs whose source branch matches this regexp
        successful_builds: Build name regexps that must be green. Omit to
            skip build checks, pass [] to require all builds to be green.
        find_latest_successful: Substitute the latest green commit when the
            head commit is not green

    Returns:
        Pull requests with number, branch and head SHA, or an error.
    """
    return list_pull_requests_impl(
        repo_url=repo_url,
        branch_match=branch_match,
        successful_builds=successful_builds,
        find_latest_successful=find_latest_successful,
    )


if __name__ == "__main__":
    mcp.run()
