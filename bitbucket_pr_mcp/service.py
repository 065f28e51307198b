"""Pull request discovery filtered by branch name and build status."""

import logging
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, TypeVar

from .client import BitbucketClient, RetrievalError
from .models import (
    BuildStatus,
    CommitRecord,
    DiscoveryConfig,
    Page,
    PullRequestCandidate,
    ResolvedPullRequest,
)
from .policy import compile_pattern, compile_patterns, is_green

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PullRequestSource(Protocol):
    """Paged Bitbucket operations the discovery logic depends on."""

    def fetch_pull_requests_page(
        self, project_key: str, repo_slug: str, start: int | None = None
    ) -> Page[PullRequestCandidate]: ...

    def fetch_build_statuses_page(
        self, commit_id: str, start: int | None = None
    ) -> Page[BuildStatus]: ...

    def fetch_pull_request_commits_page(
        self,
        project_key: str,
        repo_slug: str,
        pull_request_id: int,
        start: int | None = None,
    ) -> Page[CommitRecord]: ...


def iter_pages(
    fetch: Callable[[int | None], Page[T]], resource: str
) -> Iterator[Page[T]]:
    """Yield pages of resource, following nextPageStart until the last page."""
    start: int | None = None
    while True:
        page = fetch(start)
        yield page
        if not page.has_next_page:
            return
        if page.next_page_start is None:
            raise RetrievalError(
                f"error listing {resource}: page is not the last page "
                "but has no nextPageStart",
                resource,
            )
        start = page.next_page_start


class CommitGreenChecker:
    """Decides whether a commit's builds satisfy the build policy."""

    def __init__(self, source: PullRequestSource, patterns: list[re.Pattern[str]]):
        self.source = source
        self.patterns = patterns

    def build_statuses(self, commit_id: str) -> list[BuildStatus]:
        """Fetch all build statuses associated with the commit."""
        statuses: list[BuildStatus] = []
        for page in iter_pages(
            lambda start: self.source.fetch_build_statuses_page(commit_id, start),
            f"build statuses for {commit_id}",
        ):
            statuses.extend(page.values)
        return statuses

    def is_green(self, commit_id: str) -> bool:
        return is_green(self.patterns, self.build_statuses(commit_id))


class CommitHistoryWalker:
    """Lists the commits of a pull request in server order."""

    def __init__(self, source: PullRequestSource, project_key: str, repo_slug: str):
        self.source = source
        self.project_key = project_key
        self.repo_slug = repo_slug

    def commits_of(self, pull: PullRequestCandidate) -> list[CommitRecord]:
        tips = {pull.branch_ref_id, pull.head_commit_id}
        commits: list[CommitRecord] = []
        for page in iter_pages(
            lambda start: self.source.fetch_pull_request_commits_page(
                self.project_key, self.repo_slug, pull.id, start
            ),
            f"pull request commits for {self.project_key}/{self.repo_slug} "
            f"PR: {pull.id}",
        ):
            commits.extend(
                commit.model_copy(update={"is_branch_tip": commit.id in tips})
                for commit in page.values
            )
        return commits


class Outcome(str, Enum):
    """Why a pull request was accepted or skipped."""

    BRANCH_REJECTED = "branch_rejected"
    NO_POLICY = "no_policy"
    HEAD_GREEN = "head_green"
    HEAD_NOT_GREEN = "head_not_green"
    FALLBACK_FOUND = "fallback_found"
    FALLBACK_EXHAUSTED = "fallback_exhausted"

    @property
    def accepted(self) -> bool:
        return self in (Outcome.NO_POLICY, Outcome.HEAD_GREEN, Outcome.FALLBACK_FOUND)


@dataclass(frozen=True)
class PullRequestDecision:
    """Outcome of evaluating a single pull request."""

    pull: PullRequestCandidate
    outcome: Outcome
    head_sha: str | None = None

    @property
    def accepted(self) -> bool:
        return self.outcome.accepted

    def resolve(self) -> ResolvedPullRequest:
        if not self.accepted or self.head_sha is None:
            raise ValueError(f"PR-{self.pull.id} was skipped ({self.outcome.value})")
        return ResolvedPullRequest(
            number=self.pull.id,
            branch=self.pull.branch_display_name,
            head_sha=self.head_sha,
        )


class PullRequestLister:
    """
    Lists open pull requests of one repository.

    Pull requests can be filtered by branch name and by the build status of
    their head commit. With find_latest_successful, a pull request whose head
    is not green resolves to its most recent green commit instead.

    Args:
        source: Paged Bitbucket operations (usually a BitbucketClient)
        project_key: Bitbucket project key
        repo_slug: Repository slug
        config: Branch filter and build policy

    Raises:
        ConfigurationError: If a branch or build name regexp does not compile
    """

    def __init__(
        self,
        source: PullRequestSource,
        project_key: str,
        repo_slug: str,
        config: DiscoveryConfig | None = None,
    ):
        config = config or DiscoveryConfig()
        self.source = source
        self.project_key = project_key
        self.repo_slug = repo_slug
        self.branch_match = (
            compile_pattern(config.branch_match, "branch match")
            if config.branch_match is not None
            else None
        )
        # None means no build check, [] means all builds found on the commit
        self.successful_builds = compile_patterns(config.successful_builds)
        self.find_latest_successful = config.find_latest_successful
        self.checker = CommitGreenChecker(source, self.successful_builds or [])
        self.walker = CommitHistoryWalker(source, project_key, repo_slug)

    def evaluate(self, pull: PullRequestCandidate) -> PullRequestDecision:
        """Decide whether to skip, accept or substitute the head of a PR."""
        branch = pull.branch_display_name
        if self.branch_match is not None and not self.branch_match.search(branch):
            logger.debug("Branch %s does not match the pattern", branch)
            return PullRequestDecision(pull, Outcome.BRANCH_REJECTED)

        head_sha = pull.head_commit_id
        if self.successful_builds is None:
            return PullRequestDecision(pull, Outcome.NO_POLICY, head_sha)

        if self.checker.is_green(head_sha):
            return PullRequestDecision(pull, Outcome.HEAD_GREEN, head_sha)

        if not self.find_latest_successful:
            logger.debug("Commit %s has failed builds, skipping PR-%d", head_sha, pull.id)
            return PullRequestDecision(pull, Outcome.HEAD_NOT_GREEN)

        for commit in self.walker.commits_of(pull):
            if commit.is_branch_tip:
                # Already known not to be green
                continue
            if self.checker.is_green(commit.id):
                logger.debug("Latest green commit is %s", commit.id)
                return PullRequestDecision(pull, Outcome.FALLBACK_FOUND, commit.id)

        logger.debug(
            "Couldn't find a commit with successful builds, skipping PR-%d", pull.id
        )
        return PullRequestDecision(pull, Outcome.FALLBACK_EXHAUSTED)

    def list(self) -> list[ResolvedPullRequest]:
        """
        Return every open pull request passing the filters, in server order.

        Raises:
            RetrievalError: If any page of pull requests, commits or build
                statuses cannot be fetched. No partial result is returned.
        """
        pull_requests: list[ResolvedPullRequest] = []
        seen: set[int] = set()
        for page in iter_pages(
            lambda start: self.source.fetch_pull_requests_page(
                self.project_key, self.repo_slug, start
            ),
            f"pull requests for {self.project_key}/{self.repo_slug}",
        ):
            for pull in page.values:
                if pull.id in seen:
                    # Offset paging shifts PRs when one is opened mid-listing
                    logger.debug("PR-%d already listed, skipping", pull.id)
                    continue
                seen.add(pull.id)
                decision = self.evaluate(pull)
                if decision.accepted:
                    pull_requests.append(decision.resolve())

        logger.info(
            "Found %d pull requests for %s/%s",
            len(pull_requests),
            self.project_key,
            self.repo_slug,
        )
        return pull_requests


class BitbucketService:
    """Pull request discovery bound to a Bitbucket Server repository."""

    def __init__(
        self,
        client: BitbucketClient,
        project_key: str,
        repo_slug: str,
        config: DiscoveryConfig | None = None,
    ):
        self.client = client
        self.lister = PullRequestLister(client, project_key, repo_slug, config)

    @classmethod
    def basic_auth(
        cls,
        url: str,
        username: str,
        password: str,
        project_key: str,
        repo_slug: str,
        config: DiscoveryConfig | None = None,
    ) -> "BitbucketService":
        client = BitbucketClient(url, username, password, from_env=False)
        return cls(client, project_key, repo_slug, config)

    @classmethod
    def no_auth(
        cls,
        url: str,
        project_key: str,
        repo_slug: str,
        config: DiscoveryConfig | None = None,
    ) -> "BitbucketService":
        client = BitbucketClient(url, from_env=False)
        return cls(client, project_key, repo_slug, config)

    def __enter__(self) -> "BitbucketService":
        self.client.__enter__()
        return self

    def __exit__(self, *args: object) -> None:
        self.client.__exit__(*args)

    def list(self) -> list[ResolvedPullRequest]:
        if self.client.is_open:
            return self.lister.list()
        with self.client:
            return self.lister.list()
