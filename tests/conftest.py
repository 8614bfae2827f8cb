"""Shared fixtures for UniMedia tests.

Every test runs with the working directory in a temporary folder so the
exam list, the SQLite file, and config lookups never touch the repo.
"""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from unimedia.client.api_client import PlanApiClient
from unimedia.config.app_config import AppConfig, clear_config_cache
from unimedia.db.plans_repository import SqlitePlanStore
from unimedia.web.api import create_app

CONFIG_ENV_VARS = (
    "PORT",
    "HOST",
    "ORIGINS",
    "UNIMEDIA_STORE",
    "UNIMEDIA_DB_PATH",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "UNIMEDIA_API_BASE",
    "UNIMEDIA_DATA_DIR",
)


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Run each test from an empty temp directory with a clean config."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_config_cache()
    yield tmp_path
    clear_config_cache()


@pytest.fixture
def data_dir(tmp_path) -> Path:
    """Data directory holding state/exams_v5.json."""
    path = tmp_path / "data"
    path.mkdir(exist_ok=True)
    return path


@pytest.fixture
def plan_store(tmp_path) -> SqlitePlanStore:
    """Fresh SQLite-backed plan store."""
    return SqlitePlanStore(tmp_path / "db" / "test.db")


@pytest.fixture
def app(plan_store):
    """API app wired to the temporary store."""
    return create_app(store=plan_store, config=AppConfig())


@pytest.fixture
def client(app) -> TestClient:
    """HTTP test client for the API."""
    return TestClient(app)


@pytest.fixture
def plan_api(client) -> PlanApiClient:
    """PlanApiClient talking to the in-process API."""
    return PlanApiClient(http=client)


@pytest.fixture
def sample_rows() -> list[dict]:
    """Valid POST rows payload."""
    return [
        {"codice": "70/0041-M", "denominazione": "Analisi matematica 1", "cfu": 12},
        {"codice": "IN/0155", "denominazione": "Fondamenti di informatica", "cfu": 9},
        {"codice": "FI/0003", "denominazione": "Fisica generale", "cfu": 6},
    ]


@pytest.fixture
def write_csv(tmp_path):
    """Write a plan CSV; returns its path."""

    def _write(name: str, content: str | bytes, encoding: str = "utf-8") -> Path:
        path = tmp_path / "uploads" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        data = content if isinstance(content, bytes) else content.encode(encoding)
        path.write_bytes(data)
        return path

    return _write

