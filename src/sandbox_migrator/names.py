"""Environment name resolution from templated patterns.

Patterns contain bracketed tokens that are replaced at resolution time:

    [YYYY]  four digit UTC year       [hh]  UTC hour, zero padded
    [YY]    last two digits of year   [mm]  UTC minute, zero padded
    [MM]    UTC month, zero padded    [ss]  UTC second, zero padded
    [DD]    UTC day, zero padded      [branch]  normalised branch name

Unknown bracket contents are left untouched. ``[branch]`` is also left
literal when no branch name is supplied; callers that need a branch-derived
name must check for that themselves (see ``is_valid_environment_id``).

Example:
    >>> resolve("GH-[branch]", branch_name="feature/new-func")
    'GH-feature-new-func'
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]

TOKEN_PATTERN = re.compile(r"\[(YYYY|YY|MM|DD|hh|mm|ss|branch)\]")

# Characters that are not allowed in environment ids and are common in branch names
BRANCH_SEPARATOR_PATTERN = re.compile(r"[_./]")

# Environment ids: letters, digits, dashes, underscores and dots, at most 64 characters
VALID_ENVIRONMENT_ID_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]{0,63}$")

_DATE_TOKENS: dict[str, Callable[[datetime], str]] = {
    "YYYY": lambda now: f"{now.year:04d}",
    "YY": lambda now: f"{now.year:04d}"[2:],
    "MM": lambda now: f"{now.month:02d}",
    "DD": lambda now: f"{now.day:02d}",
    "hh": lambda now: f"{now.hour:02d}",
    "mm": lambda now: f"{now.minute:02d}",
    "ss": lambda now: f"{now.second:02d}",
}


def utc_now() -> datetime:
    """Return the current wall clock time in UTC."""
    return datetime.now(UTC)


def branch_name_to_environment_name(branch_name: str) -> str:
    """Convert a branch name to a valid environment name.

    Every ``_``, ``.`` and ``/`` is replaced with ``-``.
    """
    return BRANCH_SEPARATOR_PATTERN.sub("-", branch_name)


def resolve(pattern: str, branch_name: str | None = None, clock: Clock = utc_now) -> str:
    """Render a name pattern into a concrete environment identifier.

    The clock is read once per call, so all date tokens of one resolution
    agree with each other. Two calls may differ when they straddle a
    time unit boundary.

    Args:
        pattern: Template containing bracketed tokens.
        branch_name: Branch used for the ``[branch]`` token.
        clock: Returns the current time; converted to UTC.

    Returns:
        The resolved name.
    """
    now = clock().astimezone(UTC)

    def replace(match: re.Match[str]) -> str:
        token = match.group(1)
        if token == "branch":
            if not branch_name:
                return match.group(0)
            return branch_name_to_environment_name(branch_name)
        return _DATE_TOKENS[token](now)

    return TOKEN_PATTERN.sub(replace, pattern)


def is_valid_environment_id(environment_id: str) -> bool:
    """Check whether a resolved name can be used as an environment id."""
    return bool(VALID_ENVIRONMENT_ID_PATTERN.match(environment_id))
