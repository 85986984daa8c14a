"""End-to-end run of the action.

Steps run strictly in sequence:

1. Provision the environment for the branch context
2. Wait for the environment to finish processing
3. Apply pending migrations, committing the version marker after each
4. Reconcile API keys, the alias and stale feature environments (best effort)

Errors from steps 1-3 propagate; step 4 never raises.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from .config import Config
from .errors import (
    EnvironmentFailedError,
    EnvironmentTimeoutError,
    ErrorKind,
    RecoveredError,
)
from .github_context import BranchContext
from .models import EnvironmentStatus
from .names import Clock, utc_now
from .poller import Sleep, await_ready
from .provisioner import EnvironmentKind, EnvironmentProvisioner
from .reconciler import PostProvisionReconciler, StepResult
from .runner import MigrationRunner
from .sequencer import MigrationSequencer, SequenceResult
from .service import CmsService


def environment_url(config: Config, environment_id: str) -> str:
    """Web app URL of an environment."""
    return f"{config.app_base_url}/spaces/{config.space_id}/environments/{environment_id}"


@dataclass
class ActionResult:
    """Outcome of a successful run."""

    environment_id: str
    environment_url: str
    kind: EnvironmentKind
    readiness: EnvironmentStatus | None
    migrations: SequenceResult
    steps: list[StepResult] = field(default_factory=list)
    recovered: list[RecoveredError] = field(default_factory=list)

    @property
    def outputs(self) -> dict[str, str]:
        """Values published as action outputs."""
        return {
            "environment_url": self.environment_url,
            "environment_name": self.environment_id,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "environment_id": self.environment_id,
            "environment_url": self.environment_url,
            "kind": self.kind.value,
            "readiness": self.readiness.value if self.readiness else None,
            "migrations": self.migrations.to_dict(),
            "steps": [step.to_dict() for step in self.steps],
            "recovered": [error.to_dict() for error in self.recovered],
        }


async def run_action(
    config: Config,
    context: BranchContext,
    service: CmsService,
    runner: MigrationRunner,
    *,
    clock: Clock = utc_now,
    sleep: Sleep = asyncio.sleep,
    logger: logging.Logger | None = None,
) -> ActionResult:
    """Provision, migrate and reconcile the environment for a branch context.

    Raises:
        SandboxMigratorError: For any unrecovered error of provisioning,
            readiness (in strict mode) or migration sequencing.
    """
    log = logger or logging.getLogger(__name__)
    log.debug("Branch names for getting environment", extra={"context": context.to_dict()})

    provisioner = EnvironmentProvisioner(service, config, clock=clock, logger=log)
    loop = asyncio.get_running_loop()
    handle = await loop.run_in_executor(None, provisioner.provision, context)
    environment_id = handle.environment_id
    recovered: list[RecoveredError] = []

    readiness: EnvironmentStatus | None = None
    try:
        readiness = await await_ready(
            service,
            environment_id,
            delay_ms=config.delay_ms,
            max_attempts=config.max_attempts,
            sleep=sleep,
            logger=log,
        )
    except EnvironmentTimeoutError as e:
        if config.abort_on_environment_failure:
            raise
        log.warning("Continuing without a ready environment", extra={"error": str(e)})
        recovered.append(RecoveredError(kind=ErrorKind.TIMEOUT, step="readiness", cause=e))

    if readiness == EnvironmentStatus.FAILED and config.abort_on_environment_failure:
        raise EnvironmentFailedError(environment_id)

    sequencer = MigrationSequencer(service, runner, config, logger=log)
    migrations = await loop.run_in_executor(
        None, sequencer.run, environment_id, config.migrations_dir
    )

    reconciler = PostProvisionReconciler(service, config, clock=clock, logger=log)
    steps = await reconciler.reconcile(environment_id, handle.kind, context)
    recovered.extend(step.recovered for step in steps if step.recovered)

    result = ActionResult(
        environment_id=environment_id,
        environment_url=environment_url(config, environment_id),
        kind=handle.kind,
        readiness=readiness,
        migrations=migrations,
        steps=steps,
        recovered=recovered,
    )
    log.info("All done", extra={"result": result.to_dict()})
    return result
