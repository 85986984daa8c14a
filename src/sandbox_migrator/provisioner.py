"""Environment provisioning for a branch context.

Canonical environments (pushes to, or merged pull requests into, the
default branch) get a fresh timestamped environment that the alias can later
point to. Feature environments are named after the pull request's head branch
and recreated on every run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .config import Config
from .errors import CmsApiError, IdentifierResolutionError, ProvisioningError
from .github_context import BranchContext
from .models import Environment
from .names import (
    Clock,
    branch_name_to_environment_name,
    is_valid_environment_id,
    resolve,
    utc_now,
)
from .service import CmsService


class EnvironmentKind(str, Enum):
    """Role of the provisioned environment."""

    CANONICAL = "canonical"
    FEATURE = "feature"


@dataclass(frozen=True)
class EnvironmentHandle:
    """The provisioned environment and how it was derived."""

    environment_id: str
    kind: EnvironmentKind
    environment: Environment
    branch_names: dict[str, str | None]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "environment_id": self.environment_id,
            "kind": self.kind.value,
            "status": self.environment.status.value,
            "branch_names": self.branch_names,
        }


def determine_kind(context: BranchContext) -> EnvironmentKind:
    """Decide whether the run provisions a canonical or a feature environment.

    Canonical when the base branch is the default branch, unless the run is
    for a pull request that has not been merged yet.
    """
    if not context.targets_default_branch:
        return EnvironmentKind.FEATURE
    if context.is_pull_request and not context.merged:
        return EnvironmentKind.FEATURE
    return EnvironmentKind.CANONICAL


def feature_environment_id(config: Config, head_ref: str | None, clock: Clock = utc_now) -> str:
    """Compute the feature environment id for a head branch.

    Raises:
        IdentifierResolutionError: If there is no head branch or the name is not a valid id.
    """
    if not head_ref:
        raise IdentifierResolutionError(
            "Could not determine environment id: feature environments need a head branch"
        )
    return _validated(resolve(config.feature_pattern, head_ref, clock=clock))


def compute_environment_id(
    kind: EnvironmentKind,
    context: BranchContext,
    config: Config,
    clock: Clock = utc_now,
) -> str:
    """Resolve the environment id for the given kind."""
    if kind == EnvironmentKind.CANONICAL:
        return _validated(resolve(config.master_pattern, clock=clock))
    return feature_environment_id(config, context.head_ref, clock=clock)


def _validated(environment_id: str) -> str:
    if not is_valid_environment_id(environment_id):
        raise IdentifierResolutionError(
            f"Resolved name is not a valid environment id: '{environment_id}'",
            details={"environment_id": environment_id},
        )
    return environment_id


class EnvironmentProvisioner:
    """Creates (or recreates) the environment for a run."""

    def __init__(
        self,
        service: CmsService,
        config: Config,
        *,
        clock: Clock = utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self._service = service
        self._config = config
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    def provision(self, context: BranchContext) -> EnvironmentHandle:
        """Provision the environment for the branch context.

        Raises:
            IdentifierResolutionError: If no valid environment id can be computed.
            ProvisioningError: If the environment cannot be created.
        """
        kind = determine_kind(context)
        environment_id = compute_environment_id(kind, context, self._config, clock=self._clock)
        branch_names = {
            "base": branch_name_to_environment_name(context.base_ref),
            "head": branch_name_to_environment_name(context.head_ref) if context.head_ref else None,
        }

        self._logger.debug(
            "Environment resolved",
            extra={"environment_id": environment_id, "kind": kind.value},
        )

        if kind == EnvironmentKind.FEATURE:
            self._remove_existing(environment_id)

        self._logger.info(f"Creating environment {environment_id}")
        try:
            environment = self._service.create_environment(environment_id, environment_id)
        except CmsApiError as e:
            self._logger.error(
                f"Failed creating new environment with environmentId: '{environment_id}'",
                extra={"error": str(e)},
            )
            raise ProvisioningError(
                f"Failed to create environment '{environment_id}': {e}",
                environment_id=environment_id,
                cause=e,
            ) from e

        self._logger.info(f"New environment created: '{environment_id}'")
        return EnvironmentHandle(
            environment_id=environment_id,
            kind=kind,
            environment=environment,
            branch_names=branch_names,
        )

    def _remove_existing(self, environment_id: str) -> None:
        """Delete a previous feature environment with the same id.

        A missing environment is the normal case; any other failure is
        logged and creation proceeds.
        """
        self._logger.info(f"Checking for existing versions of environment: '{environment_id}'")
        try:
            existing = self._service.get_environment(environment_id)
            if existing is None:
                self._logger.info(f"Environment not found: '{environment_id}'")
                return
            self._service.delete_environment(environment_id)
            self._logger.info(f"Environment deleted: '{environment_id}'")
        except Exception as e:
            self._logger.warning(
                f"Could not remove existing environment '{environment_id}'",
                extra={"error": str(e)},
            )
