"""Main entry point for the sandbox migrator action.

Runs once per CI job: loads configuration and the triggering event,
provisions and migrates the environment, publishes the outputs and exits.

Exit codes:
    0: all steps completed (best-effort failures are logged only)
    1: configuration, provisioning or migration failure
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path

from .action import ActionResult, run_action
from .client import ContentfulClient
from .config import Config
from .errors import ConfigurationError, SandboxMigratorError
from .github_context import BranchContext, load_github_event, resolve_branch_context
from .runner import CliMigrationRunner

# LogRecord attributes that are not user supplied extras
_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(verbose: bool = False) -> None:
    """Configure structured logging on stdout.

    Verbosity only changes which records are emitted, never behavior.
    """
    root_logger = logging.getLogger()
    if not any(isinstance(h.formatter, JsonFormatter) for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Reduce noise from the HTTP stack
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def write_outputs(outputs: Mapping[str, str], environ: Mapping[str, str] | None = None) -> bool:
    """Append outputs to the file named by GITHUB_OUTPUT.

    Returns:
        False if GITHUB_OUTPUT is not set (e.g. local runs).
    """
    env = os.environ if environ is None else environ
    output_path = env.get("GITHUB_OUTPUT")
    if not output_path:
        return False
    with Path(output_path).open("a", encoding="utf-8") as handle:
        for name, value in outputs.items():
            handle.write(f"{name}={value}\n")
    return True


async def execute(
    config: Config,
    context: BranchContext,
    logger: logging.Logger,
) -> ActionResult:
    """Run the action against the real remote service and migration tool."""
    runner = CliMigrationRunner(
        config.migration_command,
        timeout_seconds=config.migration_timeout_seconds,
    )
    with ContentfulClient(
        config.space_id,
        config.management_token,
        base_url=config.api_base_url,
    ) as client:
        return await run_action(config, context, client, runner, logger=logger)


async def main(environ: Mapping[str, str] | None = None) -> int:
    """Run the action.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        config = Config.from_env(environ)
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return 1

    setup_logging(config.verbose)

    try:
        event_name, payload = load_github_event(environ)
        context = resolve_branch_context(event_name, payload)
    except SandboxMigratorError as e:
        logger.error("Could not determine branch context", extra={"error": str(e)})
        return 1

    logger.info(
        "Starting sandbox migrator",
        extra={"space_id": config.space_id, "context": context.to_dict()},
    )

    try:
        result = await execute(config, context, logger)
    except SandboxMigratorError as e:
        logger.error(
            e.message,
            extra={"error_kind": e.kind.value, "details": e.details},
        )
        return 1
    except Exception as e:
        logger.exception("Action failed unexpectedly", extra={"error": str(e)})
        return 1

    if not write_outputs(result.outputs, environ):
        logger.info("GITHUB_OUTPUT not set, outputs not published", extra=result.outputs)

    for error in result.recovered:
        logger.warning("Recovered from error", extra=error.to_dict())

    return 0


def run() -> None:
    """Entry point for the action."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
