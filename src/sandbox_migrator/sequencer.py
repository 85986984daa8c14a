"""Ordered application of migrations against an environment.

The environment stores the last applied migration version in a single
marker entry. The sequencer computes which scripts come after that version
and applies them one by one, committing the marker (update + publish) after
each script. A failure therefore leaves the marker at the last fully applied
migration, and a rerun resumes right after it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import Config
from .errors import (
    AmbiguousMarkerError,
    CmsApiError,
    MarkerCommitError,
    MigrationExecutionError,
    MissingDefaultLocaleError,
    MissingMarkerError,
    UnknownVersionError,
)
from .models import Entry
from .runner import MigrationOptions, MigrationRunner
from .service import CmsService
from .versions import MigrationScript, list_migration_scripts, parse_version, version_to_filename


@dataclass
class SequenceResult:
    """Outcome of a sequencer run."""

    environment_id: str
    previous_version: str
    current_version: str
    applied: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "environment_id": self.environment_id,
            "previous_version": self.previous_version,
            "current_version": self.current_version,
            "applied": list(self.applied),
        }


def compute_pending(available: list[str], current_version: str) -> list[str]:
    """Return the versions strictly after the current one.

    Args:
        available: Versions in ascending order.
        current_version: Version recorded in the environment.

    Raises:
        UnknownVersionError: If the current version is not in the list.
    """
    if current_version in available:
        index = available.index(current_version)
    else:
        # "1.0" recorded for a file named 1_0_0.js still identifies that file
        current = parse_version(current_version)
        matches = [i for i, v in enumerate(available) if current and parse_version(v) == current]
        if not matches:
            raise UnknownVersionError(current_version)
        index = matches[0]
    return available[index + 1 :]


class MigrationSequencer:
    """Applies pending migrations and tracks progress in the marker entry."""

    def __init__(
        self,
        service: CmsService,
        runner: MigrationRunner,
        config: Config,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._service = service
        self._runner = runner
        self._config = config
        self._logger = logger or logging.getLogger(__name__)

    def available_scripts(self, migrations_dir: Path) -> list[MigrationScript]:
        """List migration scripts in ascending version order."""
        self._logger.debug("Read all the available migrations from the file system")
        scripts = list_migration_scripts(migrations_dir, self._config.migration_extension)
        self._logger.debug(
            "Available migrations",
            extra={"versions": [s.version for s in scripts]},
        )
        return scripts

    def default_locale(self, environment_id: str) -> str:
        """Return the default locale code of the environment.

        Raises:
            MissingDefaultLocaleError: If no locale is flagged as default.
        """
        locales = self._service.get_locales(environment_id)
        for locale in locales:
            if locale.default:
                self._logger.debug(f"Default locale: '{locale.code}'")
                return locale.code
        raise MissingDefaultLocaleError(
            f"No default locale found in environment '{environment_id}'",
            details={"environment_id": environment_id},
        )

    def fetch_marker(self, environment_id: str) -> Entry:
        """Fetch the single version marker entry.

        Raises:
            MissingMarkerError: If there is no marker entry.
            AmbiguousMarkerError: If there is more than one.
        """
        content_type = self._config.version_content_type
        self._logger.debug("Find current version of the environment")
        entries = self._service.list_entries(environment_id, content_type)
        if not entries:
            raise MissingMarkerError(content_type)
        if len(entries) > 1:
            raise AmbiguousMarkerError(content_type, len(entries))
        return entries[0]

    def run(self, environment_id: str, migrations_dir: Path) -> SequenceResult:
        """Apply every migration after the recorded version, in order.

        Raises:
            DataIntegrityError: If the marker or the available versions are inconsistent.
            MigrationExecutionError: If a migration fails; later ones are not attempted.
        """
        scripts = self.available_scripts(migrations_dir)
        available = [script.version for script in scripts]
        discovered = {script.version: script.path for script in scripts}

        locale = self.default_locale(environment_id)
        marker = self.fetch_marker(environment_id)
        version_field = self._config.version_field
        current_version = marker.get_field(version_field, locale)
        if not isinstance(current_version, str) or not current_version:
            raise UnknownVersionError(current_version)

        self._logger.debug("Evaluate which migrations to run")
        pending = compute_pending(available, current_version)
        result = SequenceResult(
            environment_id=environment_id,
            previous_version=current_version,
            current_version=current_version,
        )

        if not pending:
            self._logger.info(f"Environment is up to date at version {current_version}")
            return result

        self._logger.info(
            "Running migrations",
            extra={"current_version": current_version, "pending": pending},
        )

        for version in pending:
            file_path = self._script_path(migrations_dir, version, discovered)
            self._logger.debug(f"Running {file_path}")
            try:
                self._runner.run_migration(
                    MigrationOptions(
                        space_id=self._config.space_id,
                        environment_id=environment_id,
                        access_token=self._config.management_token,
                        file_path=file_path,
                        auto_confirm=True,
                    )
                )
            except MigrationExecutionError as e:
                e.version = e.version or version
                self._logger.error(
                    f"Migration script {file_path.name} failed",
                    extra={"version": version, "error": str(e)},
                )
                raise
            self._logger.info(f"Migration script {file_path.name} succeeded")

            marker = self._commit_marker(environment_id, marker, locale, version)
            result.applied.append(version)
            result.current_version = version

        return result

    def _script_path(self, migrations_dir: Path, version: str, discovered: dict[str, Path]) -> Path:
        path = migrations_dir / version_to_filename(version, self._config.migration_extension)
        if path.is_file():
            return path
        return discovered[version]

    def _commit_marker(self, environment_id: str, marker: Entry, locale: str, version: str) -> Entry:
        """Record the version in the marker entry and publish it.

        Raises:
            MarkerCommitError: If the update or the publish fails.
        """
        marker.set_field(self._config.version_field, locale, version)
        try:
            updated = self._service.update_entry(environment_id, marker)
            published = self._service.publish_entry(environment_id, updated)
        except CmsApiError as e:
            raise MarkerCommitError(
                f"Migration {version} was applied but the version marker could not be saved: {e}",
                details={"environment_id": environment_id, "version": version},
            ) from e

        self._logger.info(
            f"Updated field {self._config.version_field} in "
            f"{self._config.version_content_type} entry to {version}"
        )
        return published
