"""In-memory Content Management service for integration testing.

This module provides mock implementations of the remote service and the
migration runner so that the whole action can run without network access
or the external migration tool.

Key Features:
- In-memory environments, API keys, aliases, entries and locales
- Scripted environment status sequences (queued → ready/failed)
- Call log for asserting on the order of remote operations
- Error injection per operation, per API key and per migration version

Usage:
    from cms_mock import MockCmsService, MockMigrationRunner

    service = MockCmsService(marker_version="1")
    runner = MockMigrationRunner()
    result = await run_action(config, context, service, runner, sleep=no_sleep)

    assert service.marker_version(result.environment_id) == "2"
"""

from .runner import MockMigrationRunner
from .service import MockCmsService, MockEnvironmentState

__all__ = [
    "MockCmsService",
    "MockEnvironmentState",
    "MockMigrationRunner",
]
