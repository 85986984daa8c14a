"""Content Management API client implementing ``CmsService``.

Each thread talks through its own ``requests.Session`` scoped to one space,
since a session is not safe to share between the executor threads of the
API key fan-out. Updates send the record's current version in
``X-Contentful-Version`` (optimistic locking); HTTP 429 responses are retried
a bounded number of times after the reset interval the API reports.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from typing import Any

import requests

from .config import DEFAULT_API_BASE_URL
from .errors import CmsApiError, CmsNotFoundError
from .models import ApiKey, Entry, Environment, EnvironmentAlias, Locale

logger = logging.getLogger(__name__)

CONTENT_TYPE_HEADER = "application/vnd.contentful.management.v1+json"
VERSION_HEADER = "X-Contentful-Version"
RATE_LIMIT_RESET_HEADER = "X-Contentful-RateLimit-Reset"

DEFAULT_TIMEOUT_SECONDS = 30
MAX_RATE_LIMIT_RETRIES = 5
MAX_RATE_LIMIT_WAIT_SECONDS = 60
PAGE_SIZE = 100


class ContentfulClient:
    """Client for the environments, API keys, aliases and entries of one space."""

    def __init__(
        self,
        space_id: str,
        access_token: str,
        *,
        base_url: str = DEFAULT_API_BASE_URL,
        session_factory: Callable[[], requests.Session] | None = None,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
        max_rate_limit_retries: int = MAX_RATE_LIMIT_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._space_id = space_id
        self._access_token = access_token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._max_rate_limit_retries = max_rate_limit_retries
        self._sleep = sleep
        self._session_factory = session_factory or requests.Session
        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._sessions_lock = threading.Lock()
        self._thread_session()

    @property
    def space_id(self) -> str:
        return self._space_id

    def _thread_session(self) -> requests.Session:
        """Return the calling thread's session, creating it on first use."""
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            session.headers.update(
                {
                    "Authorization": f"Bearer {self._access_token}",
                    "Content-Type": CONTENT_TYPE_HEADER,
                }
            )
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def close(self) -> None:
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def __enter__(self) -> ContentfulClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self._base_url}/spaces/{self._space_id}{path}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        version: int | None = None,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Raises:
            CmsNotFoundError: On HTTP 404.
            CmsApiError: On any other failure.
        """
        headers = {VERSION_HEADER: str(version)} if version is not None else None
        url = self._url(path)

        for attempt in range(self._max_rate_limit_retries + 1):
            try:
                response = self._thread_session().request(
                    method,
                    url,
                    params=params,
                    json=body,
                    headers=headers,
                    timeout=self._timeout,
                )
            except requests.RequestException as e:
                raise CmsApiError(f"{method} {path} failed: {e}") from e

            if response.status_code == 429 and attempt < self._max_rate_limit_retries:
                wait = self._rate_limit_wait(response)
                logger.warning(
                    "Rate limited, retrying",
                    extra={"path": path, "attempt": attempt + 1, "wait_seconds": wait},
                )
                self._sleep(wait)
                continue
            break

        if response.status_code == 404:
            raise CmsNotFoundError(f"{method} {path}: not found", status_code=404)
        if not response.ok:
            raise CmsApiError(
                f"{method} {path} failed with HTTP {response.status_code}: "
                f"{self._error_message(response)}",
                status_code=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise CmsApiError(f"{method} {path} returned invalid JSON") from e
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _rate_limit_wait(response: requests.Response) -> float:
        try:
            wait = float(response.headers.get(RATE_LIMIT_RESET_HEADER, "1"))
        except ValueError:
            wait = 1.0
        return min(max(wait, 0.0), MAX_RATE_LIMIT_WAIT_SECONDS)

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(data, dict):
            return str(data.get("message") or data.get("sys", {}).get("id") or data)[:200]
        return str(data)[:200]

    def _collection(self, path: str, params: dict[str, Any] | None = None) -> Iterator[dict]:
        """Iterate over all items of a paginated collection."""
        skip = 0
        while True:
            page_params = {**(params or {}), "skip": skip, "limit": PAGE_SIZE}
            data = self._request("GET", path, params=page_params)
            items = data.get("items") or []
            yield from items
            skip += len(items)
            if not items or skip >= int(data.get("total", 0)):
                return

    # -------------------------------------------------------------------------
    # Environments
    # -------------------------------------------------------------------------

    def create_environment(self, environment_id: str, name: str) -> Environment:
        data = self._request("PUT", f"/environments/{environment_id}", body={"name": name})
        return Environment.from_api(data)

    def get_environment(self, environment_id: str) -> Environment | None:
        try:
            data = self._request("GET", f"/environments/{environment_id}")
        except CmsNotFoundError:
            return None
        return Environment.from_api(data)

    def delete_environment(self, environment_id: str) -> None:
        self._request("DELETE", f"/environments/{environment_id}")

    # -------------------------------------------------------------------------
    # API keys and aliases
    # -------------------------------------------------------------------------

    def list_api_keys(self) -> list[ApiKey]:
        return [ApiKey.from_api(item) for item in self._collection("/api_keys")]

    def update_api_key(self, key: ApiKey) -> ApiKey:
        data = self._request("PUT", f"/api_keys/{key.id}", version=key.version, body=key.to_api())
        return ApiKey.from_api(data)

    def get_alias(self, alias_id: str) -> EnvironmentAlias:
        return EnvironmentAlias.from_api(self._request("GET", f"/environment_aliases/{alias_id}"))

    def update_alias(self, alias: EnvironmentAlias) -> EnvironmentAlias:
        data = self._request(
            "PUT",
            f"/environment_aliases/{alias.id}",
            version=alias.version,
            body=alias.to_api(),
        )
        return EnvironmentAlias.from_api(data)

    # -------------------------------------------------------------------------
    # Entries and locales
    # -------------------------------------------------------------------------

    def list_entries(self, environment_id: str, content_type: str) -> list[Entry]:
        items = self._collection(
            f"/environments/{environment_id}/entries", params={"content_type": content_type}
        )
        return [Entry.from_api(item) for item in items]

    def update_entry(self, environment_id: str, entry: Entry) -> Entry:
        data = self._request(
            "PUT",
            f"/environments/{environment_id}/entries/{entry.id}",
            version=entry.version,
            body=entry.to_api(),
        )
        return Entry.from_api(data)

    def publish_entry(self, environment_id: str, entry: Entry) -> Entry:
        data = self._request(
            "PUT",
            f"/environments/{environment_id}/entries/{entry.id}/published",
            version=entry.version,
        )
        return Entry.from_api(data)

    def get_locales(self, environment_id: str) -> list[Locale]:
        items = self._collection(f"/environments/{environment_id}/locales")
        return [Locale.model_validate(item) for item in items]
