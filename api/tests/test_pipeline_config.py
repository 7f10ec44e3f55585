"""Tests for environment-driven pipeline configuration."""

from datetime import datetime, timezone

import pytest

from devsync_api.services.pipeline_config import PipelineConfig


def test_defaults():
    config = PipelineConfig.from_env()
    assert config.program_start == datetime(2025, 3, 14, tzinfo=timezone.utc)
    assert config.batch_size == 5
    assert config.inter_batch_delay == 2.0
    assert config.emergency_delay == 8.0
    assert config.default_repo_points == 50


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("PROGRAM_START_DATE", "2025-04-01")
    monkeypatch.setenv("SCAN_BATCH_SIZE", "0")
    monkeypatch.setenv("SCAN_INTER_BATCH_DELAY_SECONDS", "0.5")
    monkeypatch.setenv("SCAN_MAX_RETRIES", "not-a-number")

    config = PipelineConfig.from_env()

    assert config.program_start == datetime(2025, 4, 1, tzinfo=timezone.utc)
    assert config.batch_size == 1
    assert config.inter_batch_delay == 0.5
    assert config.max_retries == 2


def test_invalid_program_start_is_rejected(monkeypatch):
    monkeypatch.setenv("PROGRAM_START_DATE", "March 14th")
    with pytest.raises(ValueError, match="PROGRAM_START_DATE"):
        PipelineConfig.from_env()


def test_with_overrides_ignores_none():
    config = PipelineConfig().with_overrides(batch_size=3, inter_batch_delay=None)
    assert config.batch_size == 3
    assert config.inter_batch_delay == 2.0


def test_eligibility_accepts_naive_utc():
    config = PipelineConfig()
    assert config.is_eligible(datetime(2025, 3, 14))
    assert not config.is_eligible(datetime(2025, 3, 13, 23, 59, 59))
