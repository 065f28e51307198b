"""Build status policy deciding whether a commit is green."""

import re
from collections.abc import Iterable, Sequence

from .models import BuildStatus


class ConfigurationError(ValueError):
    """Raised when a branch or build name pattern does not compile."""

    def __init__(self, message: str, pattern: str):
        super().__init__(message)
        self.pattern = pattern


def compile_pattern(pattern: str, what: str = "pattern") -> re.Pattern[str]:
    """Compile a user supplied regex, raising ConfigurationError on failure."""
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(
            f"error compiling {what} regexp {pattern!r}: {e}", pattern
        ) from e


def compile_patterns(
    patterns: Iterable[str] | None,
) -> list[re.Pattern[str]] | None:
    """Compile build name patterns, keeping None distinct from empty."""
    if patterns is None:
        return None
    return [compile_pattern(p, "build name") for p in patterns]


def all_green(statuses: Iterable[BuildStatus]) -> bool:
    """
    Return True if every build succeeded.

    A commit without any build is green. In-progress builds are not.
    """
    return all(status.is_successful for status in statuses)


def _matching_build_successful(
    pattern: re.Pattern[str], statuses: Sequence[BuildStatus]
) -> bool:
    return any(
        pattern.search(status.name) and status.is_successful for status in statuses
    )


def named_green(
    patterns: Sequence[re.Pattern[str]], statuses: Sequence[BuildStatus]
) -> bool:
    """
    Return True if every pattern matches at least one successful build.

    Builds not matched by any pattern are ignored. A pattern that only
    matches failed or running builds, or nothing at all, fails the check.
    """
    return all(_matching_build_successful(p, statuses) for p in patterns)


def is_green(
    patterns: Sequence[re.Pattern[str]], statuses: Sequence[BuildStatus]
) -> bool:
    """Apply named_green when patterns are given, all_green otherwise."""
    if patterns:
        return named_green(patterns, statuses)
    return all_green(statuses)
