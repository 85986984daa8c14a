"""Migration script execution.

A migration is an opaque script; the runner only reports success or
failure. ``CliMigrationRunner`` shells out to the Contentful CLI
(``contentful space migration``), which executes the script against the
given environment.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .config import DEFAULT_MIGRATION_COMMAND
from .errors import MigrationExecutionError

logger = logging.getLogger(__name__)

REDACTED = "***"
MAX_ERROR_OUTPUT_CHARS = 2000


@dataclass(frozen=True)
class MigrationOptions:
    """Inputs of a single migration run."""

    space_id: str
    environment_id: str
    access_token: str = field(repr=False)
    file_path: Path
    auto_confirm: bool = True


class MigrationRunner(Protocol):
    """Executes one migration script; raises MigrationExecutionError on failure."""

    def run_migration(self, options: MigrationOptions) -> None: ...


def redact(text: str, secret: str) -> str:
    """Remove a secret from text that may end up in logs."""
    return text.replace(secret, REDACTED) if secret else text


class CliMigrationRunner:
    """Run migrations through an external command line tool."""

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_MIGRATION_COMMAND,
        *,
        timeout_seconds: int | None = None,
    ) -> None:
        self._command = tuple(command)
        self._timeout = timeout_seconds

    def build_command(self, options: MigrationOptions) -> list[str]:
        cmd = [
            *self._command,
            "--space-id",
            options.space_id,
            "--environment-id",
            options.environment_id,
            "--management-token",
            options.access_token,
        ]
        if options.auto_confirm:
            cmd.append("--yes")
        cmd.append(str(options.file_path))
        return cmd

    def run_migration(self, options: MigrationOptions) -> None:
        """Run one migration script.

        Raises:
            MigrationExecutionError: If the tool is missing, times out or exits non-zero.
        """
        cmd = self.build_command(options)
        logger.debug(
            "Running migration command",
            extra={"command": redact(" ".join(cmd), options.access_token)},
        )

        try:
            result = subprocess.run(
                cmd,
                timeout=self._timeout,
                capture_output=True,
                text=True,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise MigrationExecutionError(
                f"Migration {options.file_path.name} timed out after {self._timeout}s"
            ) from e
        except FileNotFoundError as e:
            raise MigrationExecutionError(f"Command not found: {self._command[0]}") from e

        if result.stdout:
            logger.debug(redact(result.stdout, options.access_token))

        if result.returncode != 0:
            output = redact(result.stderr or result.stdout or "", options.access_token)
            raise MigrationExecutionError(
                f"Migration {options.file_path.name} failed with exit code "
                f"{result.returncode}: {output.strip()[-MAX_ERROR_OUTPUT_CHARS:]}"
            )
