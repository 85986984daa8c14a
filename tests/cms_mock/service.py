"""Mock Content Management service state and operations.

Implements the ``CmsService`` protocol on top of plain dictionaries. Every
returned model is a deep copy, so callers mutating a record never change the
stored state without an explicit update call.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from sandbox_migrator.errors import CmsApiError, CmsNotFoundError
from sandbox_migrator.models import (
    ApiKey,
    Entry,
    Environment,
    EnvironmentAlias,
    EnvironmentStatus,
    Locale,
)

DEFAULT_LOCALE = "en-US"
MARKER_ENTRY_ID = "version-marker"


@dataclass
class MockEnvironmentState:
    """A mock environment with a scripted status sequence.

    Each status fetch consumes the next status; the last one repeats.
    """

    environment_id: str
    name: str
    statuses: list[str] = field(default_factory=lambda: ["ready"])
    entries: list[Entry] = field(default_factory=list)
    locales: list[Locale] = field(default_factory=list)
    version: int = 1
    fetch_count: int = 0

    def next_status(self) -> EnvironmentStatus:
        index = min(self.fetch_count, len(self.statuses) - 1)
        self.fetch_count += 1
        return EnvironmentStatus.classify(self.statuses[index])

    def to_model(self, status: EnvironmentStatus) -> Environment:
        return Environment(
            id=self.environment_id,
            name=self.name,
            version=self.version,
            status=status,
        )


class MockCmsService:
    """In-memory implementation of the remote service for one space.

    Newly created environments copy the seed entries and locales, the way a
    real environment is cloned from its source.

    Args:
        marker_version: Version stored in the seeded marker entry; None seeds no marker.
        statuses: Status sequence given to newly created environments.
        version_content_type: Content type of the seeded marker entry.
        version_field: Field of the seeded marker entry.
    """

    def __init__(
        self,
        *,
        marker_version: str | None = "1",
        statuses: list[str] | None = None,
        version_content_type: str = "versionTracking",
        version_field: str = "version",
    ) -> None:
        self.environments: dict[str, MockEnvironmentState] = {}
        self.api_keys: dict[str, ApiKey] = {}
        self.aliases: dict[str, EnvironmentAlias] = {}
        self.calls: list[tuple[str, ...]] = []
        self.failures: dict[str, Exception] = {}
        self.failing_api_keys: set[str] = set()
        self.statuses = statuses or ["ready"]
        self.version_content_type = version_content_type
        self.version_field = version_field

        self.seed_locales = [Locale(code=DEFAULT_LOCALE, name="English (United States)", default=True)]
        self.seed_entries: list[Entry] = []
        if marker_version is not None:
            self.seed_entries.append(self.make_marker(marker_version))

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def make_marker(self, version: str, entry_id: str = MARKER_ENTRY_ID) -> Entry:
        return Entry(
            id=entry_id,
            version=1,
            content_type=self.version_content_type,
            fields={self.version_field: {DEFAULT_LOCALE: version}},
        )

    def add_environment(
        self,
        environment_id: str,
        *,
        statuses: list[str] | None = None,
    ) -> MockEnvironmentState:
        state = MockEnvironmentState(
            environment_id=environment_id,
            name=environment_id,
            statuses=list(statuses or self.statuses),
            entries=copy.deepcopy(self.seed_entries),
            locales=copy.deepcopy(self.seed_locales),
        )
        self.environments[environment_id] = state
        return state

    def add_api_key(self, key_id: str, environments: list[str] | None = None) -> ApiKey:
        key = ApiKey(id=key_id, version=1, name=key_id, environments=environments or ["master"])
        self.api_keys[key_id] = key
        return key

    def add_alias(self, alias_id: str, environment_id: str) -> EnvironmentAlias:
        alias = EnvironmentAlias(id=alias_id, version=1, environment_id=environment_id)
        self.aliases[alias_id] = alias
        return alias

    def fail(self, operation: str, error: Exception | None = None) -> None:
        """Make every call of an operation raise."""
        self.failures[operation] = error or CmsApiError(f"{operation} failed", status_code=500)

    def marker_version(self, environment_id: str) -> Any:
        entries = self.environments[environment_id].entries
        return entries[0].get_field(self.version_field, DEFAULT_LOCALE)

    def operations(self) -> list[str]:
        return [call[0] for call in self.calls]

    def _record(self, operation: str, *args: str) -> None:
        self.calls.append((operation, *args))
        if operation in self.failures:
            raise self.failures[operation]

    def _environment(self, environment_id: str) -> MockEnvironmentState:
        state = self.environments.get(environment_id)
        if state is None:
            raise CmsNotFoundError(f"Environment '{environment_id}' not found", status_code=404)
        return state

    # -------------------------------------------------------------------------
    # CmsService
    # -------------------------------------------------------------------------

    def create_environment(self, environment_id: str, name: str) -> Environment:
        self._record("create_environment", environment_id)
        if environment_id in self.environments:
            raise CmsApiError(f"Environment '{environment_id}' already exists", status_code=422)
        state = self.add_environment(environment_id)
        state.name = name
        return state.to_model(EnvironmentStatus.PENDING)

    def get_environment(self, environment_id: str) -> Environment | None:
        self._record("get_environment", environment_id)
        state = self.environments.get(environment_id)
        if state is None:
            return None
        return state.to_model(state.next_status())

    def delete_environment(self, environment_id: str) -> None:
        self._record("delete_environment", environment_id)
        self._environment(environment_id)
        del self.environments[environment_id]

    def list_api_keys(self) -> list[ApiKey]:
        self._record("list_api_keys")
        return [key.model_copy(deep=True) for key in self.api_keys.values()]

    def update_api_key(self, key: ApiKey) -> ApiKey:
        self._record("update_api_key", key.id)
        if key.id in self.failing_api_keys:
            raise CmsApiError(f"API key '{key.id}' update failed", status_code=500)
        stored = key.model_copy(deep=True)
        stored.version = (key.version or 0) + 1
        self.api_keys[key.id] = stored
        return stored.model_copy(deep=True)

    def get_alias(self, alias_id: str) -> EnvironmentAlias:
        self._record("get_alias", alias_id)
        alias = self.aliases.get(alias_id)
        if alias is None:
            raise CmsNotFoundError(f"Alias '{alias_id}' not found", status_code=404)
        return alias.model_copy(deep=True)

    def update_alias(self, alias: EnvironmentAlias) -> EnvironmentAlias:
        self._record("update_alias", alias.id)
        stored = alias.model_copy(deep=True)
        stored.version = (alias.version or 0) + 1
        self.aliases[alias.id] = stored
        return stored.model_copy(deep=True)

    def list_entries(self, environment_id: str, content_type: str) -> list[Entry]:
        self._record("list_entries", environment_id, content_type)
        state = self._environment(environment_id)
        return [
            entry.model_copy(deep=True)
            for entry in state.entries
            if entry.content_type == content_type
        ]

    def update_entry(self, environment_id: str, entry: Entry) -> Entry:
        self._record("update_entry", environment_id, entry.id)
        state = self._environment(environment_id)
        for index, stored in enumerate(state.entries):
            if stored.id == entry.id:
                if stored.version != entry.version:
                    raise CmsApiError(f"Version mismatch for entry '{entry.id}'", status_code=409)
                updated = entry.model_copy(deep=True)
                updated.version = (entry.version or 0) + 1
                state.entries[index] = updated
                return updated.model_copy(deep=True)
        raise CmsNotFoundError(f"Entry '{entry.id}' not found", status_code=404)

    def publish_entry(self, environment_id: str, entry: Entry) -> Entry:
        self._record("publish_entry", environment_id, entry.id)
        state = self._environment(environment_id)
        for index, stored in enumerate(state.entries):
            if stored.id == entry.id:
                published = stored.model_copy(deep=True)
                published.version = (stored.version or 0) + 1
                state.entries[index] = published
                return published.model_copy(deep=True)
        raise CmsNotFoundError(f"Entry '{entry.id}' not found", status_code=404)

    def get_locales(self, environment_id: str) -> list[Locale]:
        self._record("get_locales", environment_id)
        state = self._environment(environment_id)
        return [locale.model_copy(deep=True) for locale in state.locales]
