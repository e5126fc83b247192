"""
Shared test configuration.
These tests are executed by `pytest` and should remain deterministic: no
real pings, no network, databases live under tmp_path.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from pingmon.config import Settings  # noqa: E402
from pingmon.db import create_db_engine  # noqa: E402
from pingmon.init_db import init_db  # noqa: E402
from pingmon.store import ResultStore  # noqa: E402


@pytest.fixture(autouse=True)
def base_test_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Ensure required environment variables are present during tests."""

    monkeypatch.setenv("PORT", "7000")
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "env.db"))
    monkeypatch.delenv("LOG_DIR", raising=False)
    monkeypatch.delenv("STATIC_DIR", raising=False)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(PORT=7000, DATABASE_PATH=str(tmp_path / "data" / "ping_monitor.db"), ALLOWED_ORIGINS=[])


@pytest.fixture
def db_engine(tmp_path: Path):
    engine = create_db_engine(str(tmp_path / "store.db"))
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(db_engine) -> ResultStore:
    return ResultStore(db_engine)
