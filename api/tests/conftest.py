"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from devsync_api.adapters.contribution_store import InMemoryContributionStore  # noqa: E402
from devsync_api.models.repository import AcceptedRepository  # noqa: E402
from devsync_api.models.user import User  # noqa: E402
from devsync_api.services.pipeline_config import PipelineConfig  # noqa: E402

ADMIN_KEY = "test-admin-key"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # Tests must never reach a real database or GitHub with real credentials.
    for key in (
        "DATABASE_URL",
        "CONTRIBUTION_STORE_PATH",
        "GITHUB_TOKEN",
        "GH_TOKEN",
        "ADMIN_GITHUB_IDS",
        "PROGRAM_START_DATE",
        "SCAN_BATCH_SIZE",
        "SCAN_INTER_BATCH_DELAY_SECONDS",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("ADMIN_API_KEY", ADMIN_KEY)


@pytest.fixture
def config() -> PipelineConfig:
    return PipelineConfig(inter_batch_delay=0.0, emergency_delay=0.0, retry_delay=0.0)


@pytest.fixture
def store() -> InMemoryContributionStore:
    s = InMemoryContributionStore(persist_path=None)
    s.upsert_user(User(id="1001", login="alice"))
    s.upsert_user(User(id="1002", login="bob"))
    s.upsert_repository(AcceptedRepository(url="https://github.com/acme/api", owner_id="9", points=50))
    s.upsert_repository(AcceptedRepository(url="https://github.com/acme/web", owner_id="9", points=80))
    return s


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Key": ADMIN_KEY, "X-Admin-User": "reviewer-1"}
