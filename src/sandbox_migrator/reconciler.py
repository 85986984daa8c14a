"""Post-provision reconciliation of API keys, the alias and stale environments.

Every step here is best effort: failures are logged and returned as
``StepResult`` values carrying a ``RecoveredError``; nothing is raised to
the caller. The API key fan-out runs its updates concurrently, one executor
job per key.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from .config import Config
from .errors import ErrorKind, IdentifierResolutionError, RecoveredError
from .github_context import BranchContext
from .models import ApiKey
from .names import Clock, utc_now
from .provisioner import EnvironmentKind, feature_environment_id
from .service import CmsService

STEP_API_KEY = "api_key"
STEP_ALIAS = "alias"
STEP_CLEANUP = "cleanup"


@dataclass(frozen=True)
class StepResult:
    """Outcome of one best-effort step."""

    step: str
    target: str
    success: bool
    recovered: RecoveredError | None = None
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        data: dict[str, Any] = {
            "step": self.step,
            "target": self.target,
            "success": self.success,
            "detail": self.detail,
        }
        if self.recovered:
            data["error"] = self.recovered.message
        return data


def _failed(step: str, target: str, error: Exception) -> StepResult:
    return StepResult(
        step=step,
        target=target,
        success=False,
        recovered=RecoveredError(kind=ErrorKind.BEST_EFFORT, step=step, cause=error),
    )


class PostProvisionReconciler:
    """Brings space-level records in line with a newly provisioned environment."""

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

    async def reconcile(
        self,
        environment_id: str,
        kind: EnvironmentKind,
        context: BranchContext,
    ) -> list[StepResult]:
        """Run all post-provision steps and return their outcomes."""
        results = await self.propagate_api_keys(environment_id)

        alias_result = self.repoint_alias(environment_id, kind)
        if alias_result:
            results.append(alias_result)

        cleanup_result = self.cleanup_feature_environment(context)
        if cleanup_result:
            results.append(cleanup_result)

        return results

    async def propagate_api_keys(self, environment_id: str) -> list[StepResult]:
        """Grant every API key of the space access to the environment."""
        self._logger.debug("Update API Keys to allow access to new environment")
        try:
            keys = self._service.list_api_keys()
        except Exception as e:
            self._logger.error("Could not list API keys", extra={"error": str(e)})
            return [_failed(STEP_API_KEY, "*", e)]

        loop = asyncio.get_running_loop()
        outcomes = await asyncio.gather(
            *(
                loop.run_in_executor(None, self._grant_key, key, environment_id)
                for key in keys
            ),
            return_exceptions=True,
        )

        results: list[StepResult] = []
        for key, outcome in zip(keys, outcomes, strict=True):
            if isinstance(outcome, Exception):
                self._logger.error(
                    f"Failed updating API key '{key.id}'",
                    extra={"api_key": key.id, "error": str(outcome)},
                )
                results.append(_failed(STEP_API_KEY, key.id, outcome))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(outcome)
        return results

    def _grant_key(self, key: ApiKey, environment_id: str) -> StepResult:
        if not key.grant_environment(environment_id):
            return StepResult(STEP_API_KEY, key.id, True, detail="already granted")
        self._logger.debug(f"Updating: '{key.id}'")
        self._service.update_api_key(key)
        return StepResult(STEP_API_KEY, key.id, True, detail="granted")

    def repoint_alias(self, environment_id: str, kind: EnvironmentKind) -> StepResult | None:
        """Point the alias at the environment for canonical runs when enabled."""
        alias_id = self._config.alias
        self._logger.info(f"Checking if we need to update {alias_id} alias")
        if kind != EnvironmentKind.CANONICAL or not self._config.set_alias:
            self._logger.debug("No alias changes required")
            return None

        self._logger.info(f"Updating {alias_id} alias.")
        try:
            alias = self._service.get_alias(alias_id)
            previous = alias.environment_id
            alias.environment_id = environment_id
            self._service.update_alias(alias)
        except Exception as e:
            self._logger.error(f"Failed updating alias '{alias_id}'", extra={"error": str(e)})
            return _failed(STEP_ALIAS, alias_id, e)

        self._logger.info(
            f"alias {alias_id} updated.",
            extra={"previous_environment": previous, "environment_id": environment_id},
        )
        return StepResult(STEP_ALIAS, alias_id, True, detail=f"{previous} -> {environment_id}")

    def cleanup_feature_environment(self, context: BranchContext) -> StepResult | None:
        """Delete the feature environment of a merged pull request when enabled."""
        if not (
            self._config.delete_feature
            and context.targets_default_branch
            and context.is_pull_request
            and context.merged
        ):
            return None

        try:
            environment_id = feature_environment_id(self._config, context.head_ref, self._clock)
        except IdentifierResolutionError as e:
            self._logger.error("Cannot delete the environment", extra={"error": str(e)})
            return _failed(STEP_CLEANUP, context.head_ref or "", e)

        self._logger.info(f"Delete the environment: {environment_id}")
        try:
            self._service.delete_environment(environment_id)
        except Exception as e:
            self._logger.error(
                "Cannot delete the environment",
                extra={"environment_id": environment_id, "error": str(e)},
            )
            return _failed(STEP_CLEANUP, environment_id, e)

        self._logger.info(f"Deleted the environment: {environment_id}")
        return StepResult(STEP_CLEANUP, environment_id, True, detail="deleted")
