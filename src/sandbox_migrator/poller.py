"""Readiness polling for newly created environments.

Environment creation is an asynchronous backend job. The poller checks the
status at a fixed interval and gives up after a fixed number of attempts, so
the worst case wait is bounded by ``delay * max_attempts``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .errors import EnvironmentTimeoutError
from .models import EnvironmentStatus
from .service import CmsService

Sleep = Callable[[float], Awaitable[None]]


async def await_ready(
    service: CmsService,
    environment_id: str,
    *,
    delay_ms: int,
    max_attempts: int,
    sleep: Sleep = asyncio.sleep,
    logger: logging.Logger | None = None,
) -> EnvironmentStatus:
    """Wait until the environment reaches a terminal status.

    Args:
        service: Remote service to query.
        environment_id: Environment to watch.
        delay_ms: Pause between attempts in milliseconds.
        max_attempts: Maximum number of status fetches.
        sleep: Coroutine used to pause; injectable for tests.
        logger: Logger for progress messages.

    Returns:
        READY or FAILED. A failed environment is reported, not raised; the
        caller decides whether that aborts the run.

    Raises:
        EnvironmentTimeoutError: If no terminal status is seen within max_attempts.
    """
    log = logger or logging.getLogger(__name__)
    log.info("Waiting for environment processing...")

    loop = asyncio.get_running_loop()
    attempt = 0
    while attempt < max_attempts:
        log.debug(f"Checking environment status... attempt #{attempt}")
        environment = await loop.run_in_executor(None, service.get_environment, environment_id)
        status = environment.status if environment else EnvironmentStatus.PENDING
        log.debug(f"Environment status: {status.value}")

        if status == EnvironmentStatus.READY:
            log.info(f"Successfully processed new environment: '{environment_id}'")
            return status
        if status == EnvironmentStatus.FAILED:
            log.warning(f"Environment creation failed: '{environment_id}'")
            return status

        attempt += 1
        if attempt < max_attempts:
            await sleep(delay_ms / 1000)

    log.error(f"Timeout waiting for environment '{environment_id}' after {attempt} attempts")
    raise EnvironmentTimeoutError(environment_id, attempt)
