"""Remote service interface consumed by the action.

The action never talks to the Content Management API directly; it goes
through this interface so that provisioning and sequencing logic can be
exercised against an in-memory implementation. ``ContentfulClient`` in
``client.py`` is the production implementation.
"""

from __future__ import annotations

from typing import Protocol

from .models import ApiKey, Entry, Environment, EnvironmentAlias, Locale


class CmsService(Protocol):
    """Operations on one space.

    Implementations raise ``CmsApiError`` (or ``CmsNotFoundError``) on failure,
    except ``get_environment`` which reports a missing environment as None.
    """

    def create_environment(self, environment_id: str, name: str) -> Environment: ...

    def get_environment(self, environment_id: str) -> Environment | None: ...

    def delete_environment(self, environment_id: str) -> None: ...

    def list_api_keys(self) -> list[ApiKey]: ...

    def update_api_key(self, key: ApiKey) -> ApiKey: ...

    def get_alias(self, alias_id: str) -> EnvironmentAlias: ...

    def update_alias(self, alias: EnvironmentAlias) -> EnvironmentAlias: ...

    def list_entries(self, environment_id: str, content_type: str) -> list[Entry]: ...

    def update_entry(self, environment_id: str, entry: Entry) -> Entry: ...

    def publish_entry(self, environment_id: str, entry: Entry) -> Entry: ...

    def get_locales(self, environment_id: str) -> list[Locale]: ...
