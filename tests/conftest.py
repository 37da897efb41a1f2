from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ingestion.db import session as db_session  # noqa: E402
from ingestion.resilience.protect import reset_resilience_registry  # noqa: E402
from ingestion.settings import reset_settings_cache  # noqa: E402
from liveness.settings import reset_liveness_settings_cache  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_caches(monkeypatch):
    monkeypatch.setenv("INGESTION_REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setenv("DATABASE_DSN", "sqlite:///:memory:")
    reset_settings_cache()
    reset_liveness_settings_cache()
    reset_resilience_registry()
    yield
    reset_settings_cache()
    reset_liveness_settings_cache()
    reset_resilience_registry()
    db_session._ENGINE = None
    db_session._SESSIONMAKER = None
    db_session._CURRENT_DSN = None


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
