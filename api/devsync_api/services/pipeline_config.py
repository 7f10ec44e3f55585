from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import datetime, timezone

DEFAULT_PROGRAM_START_DATE = "2025-03-14"


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return max(minimum, int(raw))
    except ValueError:
        return default


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return max(minimum, float(raw))
    except ValueError:
        return default


def parse_program_start(raw: str) -> datetime:
    value = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class PipelineConfig:
    program_start: datetime = parse_program_start(DEFAULT_PROGRAM_START_DATE)
    batch_size: int = 5
    inter_batch_delay: float = 2.0
    emergency_delay: float = 8.0
    low_budget_threshold: int = 200
    max_retries: int = 2
    retry_delay: float = 2.0
    default_repo_points: int = 50
    max_pages: int = 5

    @classmethod
    def from_env(cls) -> PipelineConfig:
        raw_start = (os.getenv("PROGRAM_START_DATE") or DEFAULT_PROGRAM_START_DATE).strip()
        try:
            program_start = parse_program_start(raw_start)
        except ValueError as exc:
            raise ValueError(f"invalid_env:PROGRAM_START_DATE={raw_start}") from exc
        return cls(
            program_start=program_start,
            batch_size=_env_int("SCAN_BATCH_SIZE", 5, minimum=1),
            inter_batch_delay=_env_float("SCAN_INTER_BATCH_DELAY_SECONDS", 2.0),
            emergency_delay=_env_float("SCAN_EMERGENCY_DELAY_SECONDS", 8.0),
            low_budget_threshold=_env_int("SCAN_LOW_BUDGET_THRESHOLD", 200),
            max_retries=_env_int("SCAN_MAX_RETRIES", 2),
            retry_delay=_env_float("SCAN_RETRY_DELAY_SECONDS", 2.0),
            default_repo_points=_env_int("DEFAULT_REPO_POINTS", 50),
            max_pages=_env_int("SCAN_MAX_PAGES", 5, minimum=1),
        )

    def with_overrides(self, **changes) -> PipelineConfig:
        changes = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **changes)

    def is_eligible(self, merged_at: datetime) -> bool:
        return as_utc(merged_at) >= self.program_start
