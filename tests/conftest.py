"""Pytest configuration and fixtures."""

import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for cms_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from sandbox_migrator.config import Config  # noqa: E402

FIXED_NOW = datetime(2021, 2, 3, 0, 0, 0, tzinfo=UTC)


@pytest.fixture
def fixed_clock():
    """Clock frozen at 2021-02-03T00:00:00Z."""
    return lambda: FIXED_NOW


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    """Migrations directory holding versions 1, 1.0.1 and 2."""
    directory = tmp_path / "migrations"
    directory.mkdir()
    for name in ("1.js", "1_0_1.js", "2.js"):
        (directory / name).write_text("module.exports = function (migration) {}\n")
    return directory


@pytest.fixture
def config(migrations_dir: Path) -> Config:
    """Minimal valid configuration with fast polling."""
    return Config(
        space_id="space123",
        management_token="CFPAT-secret",
        migrations_dir=migrations_dir,
        delay_ms=10,
        max_attempts=3,
    )


@pytest.fixture
def sleeps() -> list[float]:
    """Records sleep durations of ``no_sleep``."""
    return []


@pytest.fixture
def no_sleep(sleeps: list[float]):
    """Async sleep replacement that returns immediately."""

    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep
