"""Mapping between migration versions and migration script filenames.

Migration scripts are named after the version they bring the content model
to, with underscores standing in for dots: ``1_0_1.js`` holds version
``1.0.1``. Ordering is semantic, never lexical (``1.10`` comes after ``1.9``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from packaging.version import InvalidVersion, Version

from .config import DEFAULT_MIGRATION_EXTENSION
from .errors import DuplicateVersionError

logger = logging.getLogger(__name__)


def filename_to_version(filename: str, extension: str = DEFAULT_MIGRATION_EXTENSION) -> str:
    """Convert a migration filename to a version.

    Example:
        >>> filename_to_version("1_0_1.js")
        '1.0.1'
    """
    if filename.endswith(extension):
        filename = filename[: -len(extension)]
    return filename.replace("_", ".")


def version_to_filename(version: str, extension: str = DEFAULT_MIGRATION_EXTENSION) -> str:
    """Convert a version to a migration filename.

    Example:
        >>> version_to_filename("1.0.1")
        '1_0_1.js'
    """
    return f"{version.replace('.', '_')}{extension}"


def parse_version(version: str) -> Version | None:
    """Parse a version string, returning None when it is not a valid version."""
    try:
        return Version(version)
    except InvalidVersion:
        return None


def sort_versions(versions: list[str], descending: bool = False) -> list[str]:
    """Sort version strings semantically, discarding any that do not parse.

    Raises:
        DuplicateVersionError: If two strings denote the same version
            (e.g. ``1`` and ``1.0.0``), which would make the order ambiguous.
    """
    parsed: dict[Version, str] = {}
    for raw in versions:
        version = parse_version(raw)
        if version is None:
            logger.debug("Ignoring invalid version %r", raw)
            continue
        if version in parsed:
            raise DuplicateVersionError(
                f"Versions '{parsed[version]}' and '{raw}' are equivalent",
                details={"versions": [parsed[version], raw]},
            )
        parsed[version] = raw
    return [parsed[v] for v in sorted(parsed, reverse=descending)]


@dataclass(frozen=True)
class MigrationScript:
    """A migration script discovered on disk."""

    version: str
    path: Path


def list_migration_scripts(
    migrations_dir: Path,
    extension: str = DEFAULT_MIGRATION_EXTENSION,
) -> list[MigrationScript]:
    """List migration scripts in ascending version order.

    Files without the migration extension and files whose name is not a
    valid version are skipped.

    Raises:
        DuplicateVersionError: If two files map to the same version
            (e.g. ``1.0.1.js`` and ``1_0_1.js``).
    """
    scripts: dict[str, Path] = {}
    for path in sorted(migrations_dir.iterdir()):
        if not path.is_file() or not path.name.endswith(extension):
            continue
        version = filename_to_version(path.name, extension)
        if version in scripts:
            raise DuplicateVersionError(
                f"Migrations '{scripts[version].name}' and '{path.name}' "
                f"both hold version {version}",
                details={"files": [scripts[version].name, path.name]},
            )
        scripts[version] = path

    return [MigrationScript(version=v, path=scripts[v]) for v in sort_versions(list(scripts))]
