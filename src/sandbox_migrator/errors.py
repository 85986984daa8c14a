"""Exception taxonomy for the sandbox migrator.

Every error carries an ``ErrorKind`` so the top level can decide how to
report it. Fatal errors are raised and propagate to ``main``; best-effort
failures are never raised past their call site and are recorded as
``RecoveredError`` values instead.

Exception Hierarchy:
    SandboxMigratorError (base)
    ├── ConfigurationError - invalid or missing inputs
    ├── BranchContextError - triggering event cannot be interpreted
    │   ├── UnsupportedEventError - event kind is neither push nor pull request
    │   └── MalformedEventError - event payload lacks required fields
    ├── IdentifierResolutionError - no usable environment id
    ├── ProvisioningError - environment creation failed
    │   └── EnvironmentFailedError - environment reported "failed" (strict mode)
    ├── EnvironmentTimeoutError - readiness polling exhausted its attempts
    ├── DataIntegrityError - environment state cannot be trusted for sequencing
    │   ├── MissingMarkerError
    │   ├── AmbiguousMarkerError
    │   ├── UnknownVersionError
    │   ├── DuplicateVersionError
    │   ├── MissingDefaultLocaleError
    │   └── MarkerCommitError
    ├── MigrationExecutionError - a migration script failed
    └── CmsApiError - remote call failed
        └── CmsNotFoundError
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Classification used for reporting and exit handling."""

    CONFIGURATION = "configuration"
    PROVISIONING = "provisioning"
    TIMEOUT = "timeout"
    DATA_INTEGRITY = "data_integrity"
    MIGRATION = "migration"
    REMOTE = "remote"
    BEST_EFFORT = "best_effort"


class SandboxMigratorError(Exception):
    """Base exception for all sandbox migrator errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
    """

    kind: ErrorKind = ErrorKind.CONFIGURATION

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(SandboxMigratorError):
    """Raised when configuration validation fails."""

    kind = ErrorKind.CONFIGURATION


class BranchContextError(SandboxMigratorError):
    """Raised when the branch context cannot be derived from the CI event."""

    kind = ErrorKind.CONFIGURATION


class UnsupportedEventError(BranchContextError):
    """Raised for event kinds other than push and pull request."""

    def __init__(self, event_name: str) -> None:
        super().__init__(
            f"Unsupported event '{event_name}': expected push or pull_request",
            details={"event_name": event_name},
        )
        self.event_name = event_name


class MalformedEventError(BranchContextError):
    """Raised when the event payload lacks a required field."""


class IdentifierResolutionError(SandboxMigratorError):
    """Raised when no valid environment identifier can be computed."""

    kind = ErrorKind.CONFIGURATION


class ProvisioningError(SandboxMigratorError):
    """Raised when the environment cannot be created."""

    kind = ErrorKind.PROVISIONING

    def __init__(
        self,
        message: str,
        environment_id: str,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, details={"environment_id": environment_id})
        self.environment_id = environment_id
        self.cause = cause


class EnvironmentFailedError(ProvisioningError):
    """Raised when the environment reports a failed status and the run is strict."""

    def __init__(self, environment_id: str) -> None:
        super().__init__(
            f"Environment '{environment_id}' reported status 'failed'",
            environment_id=environment_id,
        )


class EnvironmentTimeoutError(SandboxMigratorError, TimeoutError):
    """Raised when the environment does not reach a terminal state in time."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, environment_id: str, attempts: int) -> None:
        super().__init__(
            f"Waiting for environment '{environment_id}' timed out after {attempts} attempts",
            details={"environment_id": environment_id, "attempts": attempts},
        )
        self.environment_id = environment_id
        self.attempts = attempts


class DataIntegrityError(SandboxMigratorError):
    """Base for errors that make the environment's version state untrustworthy."""

    kind = ErrorKind.DATA_INTEGRITY


class MissingMarkerError(DataIntegrityError):
    """No version marker entry exists in the environment."""

    def __init__(self, content_type: str) -> None:
        super().__init__(
            f'No entry of type "{content_type}" was found',
            details={"content_type": content_type},
        )


class AmbiguousMarkerError(DataIntegrityError):
    """More than one version marker entry exists in the environment."""

    def __init__(self, content_type: str, count: int) -> None:
        super().__init__(
            f'There should only be one entry of type "{content_type}", found {count}',
            details={"content_type": content_type, "count": count},
        )


class UnknownVersionError(DataIntegrityError):
    """The recorded version does not match any available migration."""

    def __init__(self, version: str | None) -> None:
        super().__init__(
            f"Version {version} is not matching with any known migration",
            details={"version": version},
        )
        self.version = version


class DuplicateVersionError(DataIntegrityError):
    """Two migration files resolve to the same semantic version."""


class MissingDefaultLocaleError(DataIntegrityError):
    """The environment has no default locale to read the marker with."""


class MarkerCommitError(DataIntegrityError):
    """The version marker could not be saved or published."""


class MigrationExecutionError(SandboxMigratorError):
    """Raised when a migration script fails."""

    kind = ErrorKind.MIGRATION

    def __init__(self, message: str, version: str | None = None) -> None:
        super().__init__(message, details={"version": version})
        self.version = version


class CmsApiError(SandboxMigratorError):
    """Raised when a Content Management API call fails."""

    kind = ErrorKind.REMOTE

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, details={"status_code": status_code})
        self.status_code = status_code


class CmsNotFoundError(CmsApiError):
    """The requested remote record does not exist."""


@dataclass(frozen=True)
class RecoveredError:
    """A failure that was caught at its call site and not escalated."""

    kind: ErrorKind
    step: str
    cause: BaseException

    @property
    def message(self) -> str:
        return str(self.cause) or type(self.cause).__name__

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "kind": self.kind.value,
            "step": self.step,
            "error": self.message,
            "error_type": type(self.cause).__name__,
        }
