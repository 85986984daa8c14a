"""Pydantic models for the remote records the action works with.

These models provide:
1. Type-safe parsing of Content Management API payloads (``from_api``)
2. Clean transformation back to request bodies (``to_api``)

Only the attributes the action reads or writes are modelled; everything
else in a payload is ignored.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EnvironmentStatus(str, Enum):
    """Processing state of an environment.

    The API reports ``queued`` while an environment is being copied; every
    value other than ``ready`` and ``failed`` is treated as pending.
    """

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"

    @classmethod
    def classify(cls, raw: str | None) -> EnvironmentStatus:
        if raw == "ready":
            return cls.READY
        if raw == "failed":
            return cls.FAILED
        return cls.PENDING


def environment_link(environment_id: str) -> dict[str, Any]:
    """Build a link object pointing at an environment."""
    return {"sys": {"type": "Link", "linkType": "Environment", "id": environment_id}}


def _sys(payload: dict[str, Any]) -> dict[str, Any]:
    sys = payload.get("sys")
    return sys if isinstance(sys, dict) else {}


def _link_id(link: Any) -> str | None:
    if isinstance(link, dict):
        sys = _sys(link)
        link_id = sys.get("id")
        return link_id if isinstance(link_id, str) else None
    return None


# =============================================================================
# Environments
# =============================================================================


class Environment(BaseModel):
    """An environment of the space."""

    model_config = {"extra": "ignore"}

    id: str = Field(min_length=1)
    name: str = ""
    version: int | None = None
    status: EnvironmentStatus = EnvironmentStatus.PENDING

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> Environment:
        sys = _sys(payload)
        return cls(
            id=sys.get("id", ""),
            name=payload.get("name", ""),
            version=sys.get("version"),
            status=EnvironmentStatus.classify(_link_id(sys.get("status"))),
        )


class EnvironmentAlias(BaseModel):
    """A named pointer to an environment."""

    model_config = {"extra": "ignore"}

    id: str = Field(min_length=1)
    version: int | None = None
    environment_id: str | None = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> EnvironmentAlias:
        sys = _sys(payload)
        return cls(
            id=sys.get("id", ""),
            version=sys.get("version"),
            environment_id=_link_id(payload.get("environment")),
        )

    def to_api(self) -> dict[str, Any]:
        """Convert to the request body of an alias update."""
        if not self.environment_id:
            raise ValueError(f"Alias '{self.id}' has no target environment")
        return {"environment": environment_link(self.environment_id)}


# =============================================================================
# API keys
# =============================================================================


class ApiKey(BaseModel):
    """A delivery API key and the environments it may read."""

    model_config = {"extra": "ignore"}

    id: str = Field(min_length=1)
    version: int | None = None
    name: str = ""
    description: str | None = None
    environments: list[str] = Field(default_factory=list)

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> ApiKey:
        sys = _sys(payload)
        environments = [_link_id(link) for link in payload.get("environments") or []]
        return cls(
            id=sys.get("id", ""),
            version=sys.get("version"),
            name=payload.get("name", ""),
            description=payload.get("description"),
            environments=[env_id for env_id in environments if env_id],
        )

    def grant_environment(self, environment_id: str) -> bool:
        """Add an environment to the access list.

        Returns:
            False if the key already had access.
        """
        if environment_id in self.environments:
            return False
        self.environments.append(environment_id)
        return True

    def to_api(self) -> dict[str, Any]:
        """Convert to the request body of an API key update."""
        body: dict[str, Any] = {
            "name": self.name,
            "environments": [environment_link(env_id) for env_id in self.environments],
        }
        if self.description is not None:
            body["description"] = self.description
        return body


# =============================================================================
# Entries and locales
# =============================================================================


class Entry(BaseModel):
    """A content entry with localised fields.

    ``fields`` maps field id to a mapping of locale code to value.
    """

    model_config = {"extra": "ignore"}

    id: str = Field(min_length=1)
    version: int | None = None
    content_type: str | None = None
    fields: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> Entry:
        sys = _sys(payload)
        return cls(
            id=sys.get("id", ""),
            version=sys.get("version"),
            content_type=_link_id(sys.get("contentType")),
            fields=payload.get("fields") or {},
        )

    def get_field(self, field_id: str, locale: str) -> Any:
        return self.fields.get(field_id, {}).get(locale)

    def set_field(self, field_id: str, locale: str, value: Any) -> None:
        self.fields.setdefault(field_id, {})[locale] = value

    def to_api(self) -> dict[str, Any]:
        """Convert to the request body of an entry update."""
        return {"fields": self.fields}


class Locale(BaseModel):
    """A locale of an environment."""

    model_config = {"extra": "ignore"}

    code: str = Field(min_length=1)
    name: str = ""
    default: bool = False
