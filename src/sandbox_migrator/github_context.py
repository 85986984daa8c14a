"""Branch context extraction from the triggering GitHub event.

Only two event kinds are supported:

- ``pull_request`` / ``pull_request_target``: head and base branch of the PR
  plus its merged flag.
- ``push``: the pushed ref (without ``refs/heads/``) as base, no head.

Any other event raises UnsupportedEventError; there is no fallback to
push-style parsing.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from .errors import MalformedEventError, UnsupportedEventError

logger = logging.getLogger(__name__)

REF_HEADS_PREFIX = "refs/heads/"


class EventKind(str, Enum):
    """Supported triggering events."""

    PULL_REQUEST = "pull_request"
    PUSH = "push"


EVENT_KINDS: dict[str, EventKind] = {
    "pull_request": EventKind.PULL_REQUEST,
    "pull_request_target": EventKind.PULL_REQUEST,
    "push": EventKind.PUSH,
}


@dataclass(frozen=True)
class BranchContext:
    """Branch names involved in the triggering event."""

    head_ref: str | None
    base_ref: str
    default_branch: str
    event_kind: EventKind = EventKind.PUSH
    merged: bool = False

    @property
    def is_pull_request(self) -> bool:
        return self.event_kind == EventKind.PULL_REQUEST

    @property
    def targets_default_branch(self) -> bool:
        return self.base_ref == self.default_branch

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "head_ref": self.head_ref,
            "base_ref": self.base_ref,
            "default_branch": self.default_branch,
            "event_kind": self.event_kind.value,
            "merged": self.merged,
        }


def _require(payload: Mapping[str, Any], *path: str) -> str:
    value: Any = payload
    for key in path:
        if not isinstance(value, Mapping) or key not in value:
            raise MalformedEventError(f"Event payload is missing '{'.'.join(path)}'")
        value = value[key]
    if not isinstance(value, str) or not value:
        raise MalformedEventError(f"Event payload field '{'.'.join(path)}' must be a string")
    return value


def resolve_branch_context(event_name: str, payload: Mapping[str, Any]) -> BranchContext:
    """Extract the branch context from an event.

    Args:
        event_name: Value of GITHUB_EVENT_NAME.
        payload: Parsed webhook payload.

    Raises:
        UnsupportedEventError: For event kinds other than push and pull request.
        MalformedEventError: If a required payload field is missing.
    """
    kind = EVENT_KINDS.get(event_name)
    if kind is None:
        raise UnsupportedEventError(event_name)

    logger.debug("Getting branch names for %s", event_name)
    default_branch = _require(payload, "repository", "default_branch")

    if kind == EventKind.PULL_REQUEST:
        pull_request = payload.get("pull_request") or {}
        return BranchContext(
            head_ref=_require(payload, "pull_request", "head", "ref"),
            base_ref=_require(payload, "pull_request", "base", "ref"),
            default_branch=default_branch,
            event_kind=kind,
            merged=bool(pull_request.get("merged", False)),
        )

    ref = _require(payload, "ref")
    return BranchContext(
        head_ref=None,
        base_ref=ref.removeprefix(REF_HEADS_PREFIX),
        default_branch=default_branch,
        event_kind=kind,
    )


def load_github_event(environ: Mapping[str, str] | None = None) -> tuple[str, dict[str, Any]]:
    """Read the event name and payload the runner exposes to actions.

    Raises:
        MalformedEventError: If the variables are unset or the payload is unreadable.
    """
    env = os.environ if environ is None else environ
    event_name = env.get("GITHUB_EVENT_NAME", "")
    event_path = env.get("GITHUB_EVENT_PATH", "")
    if not event_name or not event_path:
        raise MalformedEventError("GITHUB_EVENT_NAME and GITHUB_EVENT_PATH must be set")
    return event_name, load_event_payload(Path(event_path))


def load_event_payload(path: Path) -> dict[str, Any]:
    """Load a webhook payload from a JSON file."""
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise MalformedEventError(f"Failed to read event payload {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise MalformedEventError(f"Invalid JSON in event payload {path}: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedEventError(f"Event payload must be a JSON object: {path}")
    return payload
