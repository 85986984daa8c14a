"""Configuration management with validation.

The configuration is resolved once at process entry and passed explicitly
into every component. Nothing in the package reads process environment
variables at import time.
"""

from __future__ import annotations

import os
import re
import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError

__all__ = ["Config", "ConfigurationError"]

# Defaults
DEFAULT_ALIAS = "master"
DEFAULT_MASTER_PATTERN = "master-[YYYY]-[MM]-[DD]-[mm][ss]"
DEFAULT_FEATURE_PATTERN = "GH-[branch]"
DEFAULT_VERSION_CONTENT_TYPE = "versionTracking"
DEFAULT_VERSION_FIELD = "version"
DEFAULT_MIGRATIONS_DIR = "migrations"
DEFAULT_MIGRATION_EXTENSION = ".js"
DEFAULT_MIGRATION_COMMAND = ("contentful", "space", "migration")
DEFAULT_API_BASE_URL = "https://api.contentful.com"
DEFAULT_APP_BASE_URL = "https://app.contentful.com"

# Polling bounds
DEFAULT_DELAY_MS = 5000
MAX_DELAY_MS = 600_000
DEFAULT_MAX_ATTEMPTS = 10
MAX_ATTEMPTS_LIMIT = 1000

# Input validation patterns
VALID_SPACE_ID_PATTERN = r"^[a-zA-Z0-9]{1,64}$"
VALID_CONTENT_TYPE_PATTERN = r"^[a-zA-Z0-9_.-]{1,64}$"
VALID_EXTENSION_PATTERN = r"^\.[a-zA-Z0-9]+$"

# GitHub Actions exposes `with:` inputs as INPUT_<NAME> environment variables
INPUT_PREFIX = "INPUT_"

_TRUE_VALUES = ("true", "1", "yes")
_FALSE_VALUES = ("false", "0", "no")


@dataclass(frozen=True)
class Config:
    """Action configuration.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately, before any remote call is made.
    """

    # Required fields
    space_id: str
    management_token: str = field(repr=False)

    # Naming
    alias: str = DEFAULT_ALIAS
    master_pattern: str = DEFAULT_MASTER_PATTERN
    feature_pattern: str = DEFAULT_FEATURE_PATTERN

    # Version tracking
    version_content_type: str = DEFAULT_VERSION_CONTENT_TYPE
    version_field: str = DEFAULT_VERSION_FIELD

    # Behavior
    delete_feature: bool = False
    set_alias: bool = False
    abort_on_environment_failure: bool = False
    verbose: bool = False

    # Migrations
    migrations_dir: Path = field(default_factory=lambda: Path(DEFAULT_MIGRATIONS_DIR))
    migration_extension: str = DEFAULT_MIGRATION_EXTENSION
    migration_command: tuple[str, ...] = DEFAULT_MIGRATION_COMMAND
    migration_timeout_seconds: int | None = None

    # Readiness polling
    delay_ms: int = DEFAULT_DELAY_MS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    # Endpoints
    api_base_url: str = DEFAULT_API_BASE_URL
    app_base_url: str = DEFAULT_APP_BASE_URL

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.space_id:
            errors.append("space_id is required")
        elif not re.match(VALID_SPACE_ID_PATTERN, self.space_id):
            errors.append(f"space_id must match pattern {VALID_SPACE_ID_PATTERN}: {self.space_id}")

        if not self.management_token:
            errors.append("management_api_key is required")

        if not self.alias:
            errors.append("contentful_alias must not be empty")

        if not self.master_pattern:
            errors.append("master_pattern must not be empty")

        if not self.feature_pattern:
            errors.append("feature_pattern must not be empty")
        elif "[branch]" not in self.feature_pattern:
            # Feature environments must be unique per branch
            errors.append(f"feature_pattern must contain [branch]: {self.feature_pattern}")

        if not re.match(VALID_CONTENT_TYPE_PATTERN, self.version_content_type):
            errors.append(
                f"version_content_type must match pattern {VALID_CONTENT_TYPE_PATTERN}: "
                f"{self.version_content_type}"
            )

        if not self.version_field:
            errors.append("version_field must not be empty")

        if not re.match(VALID_EXTENSION_PATTERN, self.migration_extension):
            errors.append(
                f"migration_extension must look like '.js': {self.migration_extension}"
            )

        if not self.migration_command:
            errors.append("migration_command must not be empty")

        if self.migration_timeout_seconds is not None and self.migration_timeout_seconds < 1:
            errors.append("migration_timeout must be at least 1 second")

        if not (0 <= self.delay_ms <= MAX_DELAY_MS):
            errors.append(f"delay must be between 0 and {MAX_DELAY_MS} milliseconds")

        if not (1 <= self.max_attempts <= MAX_ATTEMPTS_LIMIT):
            errors.append(f"max_number_of_tries must be between 1 and {MAX_ATTEMPTS_LIMIT}")

        for name, url in (("api_base_url", self.api_base_url), ("app_base_url", self.app_base_url)):
            if not url.startswith("https://"):
                errors.append(f"{name} must be an https URL: {url}")

        if not self.migrations_dir.is_dir():
            errors.append(f"Migrations directory does not exist: {self.migrations_dir}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg, details={"errors": errors})

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Config:
        """Load configuration from GitHub Actions inputs.

        Inputs are read from ``INPUT_<NAME>`` variables (``INPUT_SPACE_ID``,
        ``INPUT_MANAGEMENT_API_KEY``, ...). The migrations directory is
        resolved relative to ``GITHUB_WORKSPACE`` when it is set.
        """
        env = os.environ if environ is None else environ
        inputs = {
            key[len(INPUT_PREFIX) :].lower(): value
            for key, value in env.items()
            if key.startswith(INPUT_PREFIX)
        }
        workspace = env.get("GITHUB_WORKSPACE") or None
        return cls.from_mapping(inputs, workspace=Path(workspace) if workspace else None)

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        """Load configuration from a YAML mapping of input names to values.

        Relative migration directories are resolved against the file's directory.
        """
        try:
            raw_data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigurationError(f"Failed to read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(raw_data, dict):
            raise ConfigurationError(f"Config file must contain a YAML mapping: {path}")

        return cls.from_mapping(raw_data, workspace=path.parent)

    @classmethod
    def from_mapping(
        cls,
        values: Mapping[str, Any],
        workspace: Path | None = None,
    ) -> Config:
        """Build a configuration from input names (as declared in action.yml).

        Empty values fall back to defaults, matching how GitHub Actions passes
        unset optional inputs.
        """

        def get_str(key: str, default: str) -> str:
            value = values.get(key)
            if value is None or str(value).strip() == "":
                return default
            return str(value).strip()

        def get_int(key: str, default: int) -> int:
            value = values.get(key)
            if value is None or str(value).strip() == "":
                return default
            try:
                return int(str(value).strip())
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = values.get(key)
            if isinstance(value, bool):
                return value
            normalized = str(value or "").strip().lower()
            if normalized in _TRUE_VALUES:
                return True
            if normalized in _FALSE_VALUES:
                return False
            return default

        migrations_dir = Path(get_str("migrations_dir", DEFAULT_MIGRATIONS_DIR))
        if not migrations_dir.is_absolute():
            migrations_dir = (workspace or Path.cwd()) / migrations_dir

        timeout = get_int("migration_timeout", 0)
        command = values.get("migration_command")
        if isinstance(command, (list, tuple)):
            migration_command = tuple(str(part) for part in command)
        else:
            migration_command = tuple(
                shlex.split(get_str("migration_command", shlex.join(DEFAULT_MIGRATION_COMMAND)))
            )

        return cls(
            space_id=get_str("space_id", ""),
            management_token=get_str("management_api_key", ""),
            alias=get_str("contentful_alias", DEFAULT_ALIAS),
            master_pattern=get_str("master_pattern", DEFAULT_MASTER_PATTERN),
            feature_pattern=get_str("feature_pattern", DEFAULT_FEATURE_PATTERN),
            version_content_type=get_str("version_content_type", DEFAULT_VERSION_CONTENT_TYPE),
            version_field=get_str("version_field", DEFAULT_VERSION_FIELD),
            delete_feature=get_bool("delete_feature", False),
            set_alias=get_bool("set_alias", False),
            abort_on_environment_failure=get_bool("abort_on_environment_failure", False),
            verbose=get_bool("verbose", False),
            migrations_dir=migrations_dir,
            migration_extension=get_str("migration_extension", DEFAULT_MIGRATION_EXTENSION),
            migration_command=migration_command,
            migration_timeout_seconds=timeout or None,
            delay_ms=get_int("delay", DEFAULT_DELAY_MS),
            max_attempts=get_int("max_number_of_tries", DEFAULT_MAX_ATTEMPTS),
            api_base_url=get_str("api_base_url", DEFAULT_API_BASE_URL).rstrip("/"),
            app_base_url=get_str("app_base_url", DEFAULT_APP_BASE_URL).rstrip("/"),
        )
