"""Pydantic data models for Bitbucket Server pull requests and builds."""

from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

T = TypeVar("T")

BRANCH_REF_PREFIX = "refs/heads/"


class BuildState(str, Enum):
    """Bitbucket build status state."""

    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"
    IN_PROGRESS = "INPROGRESS"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def _missing_(cls, value: object) -> "BuildState":
        return cls.UNKNOWN


class BuildStatus(BaseModel):
    """Build result attached to a commit."""

    name: str
    state: BuildState
    key: str | None = None
    url: str | None = None
    description: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_name(cls, data: object) -> object:
        # Older servers only report the key for some plugins
        if isinstance(data, dict) and "name" not in data and "key" in data:
            return {**data, "name": data["key"]}
        return data

    @property
    def is_successful(self) -> bool:
        return self.state == BuildState.SUCCESSFUL


class Ref(BaseModel):
    """Source or target ref of a pull request."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    display_id: str = Field(default="", alias="displayId")
    latest_commit: str = Field(alias="latestCommit")

    @model_validator(mode="before")
    @classmethod
    def _derive_display_id(cls, data: object) -> object:
        if (
            isinstance(data, dict)
            and not data.get("displayId")
            and not data.get("display_id")
            and "id" in data
        ):
            ref_id = str(data["id"])
            return {**data, "displayId": ref_id.removeprefix(BRANCH_REF_PREFIX)}
        return data


class PullRequestCandidate(BaseModel):
    """Open pull request as read from one listing page."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    from_ref: Ref = Field(alias="fromRef")

    @property
    def branch_display_name(self) -> str:
        return self.from_ref.display_id

    @property
    def branch_ref_id(self) -> str:
        return self.from_ref.id

    @property
    def head_commit_id(self) -> str:
        # latestCommit is not in the documented schema but is always sent
        return self.from_ref.latest_commit


class CommitRecord(BaseModel):
    """Commit of a pull request."""

    model_config = ConfigDict(frozen=True)

    id: str
    is_branch_tip: bool = False


class ResolvedPullRequest(BaseModel):
    """Pull request accepted by the discovery filters."""

    number: int
    branch: str
    head_sha: str


class Page(BaseModel, Generic[T]):
    """One page of a Bitbucket paged API response."""

    model_config = ConfigDict(populate_by_name=True)

    values: list[T]
    size: int | None = None
    limit: int | None = None
    start: int | None = None
    is_last_page: bool = Field(default=True, alias="isLastPage")
    next_page_start: int | None = Field(default=None, alias="nextPageStart")

    @property
    def has_next_page(self) -> bool:
        return not self.is_last_page


class DiscoveryConfig(BaseModel):
    """Filter and build policy applied when listing pull requests."""

    model_config = ConfigDict(frozen=True)

    branch_match: str | None = None
    # None disables the build check, [] requires every build to be green
    successful_builds: list[str] | None = None
    find_latest_successful: bool = False
