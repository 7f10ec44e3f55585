"""Batch outcome summaries for scans and ledger reconciliation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from devsync_api.models.contribution import utc_now
from devsync_api.models.user import LedgerEntry


class ScanError(BaseModel):
    user_id: str
    login: str
    error: str


class ScanReport(BaseModel):
    users_total: int = 0
    users_scanned: int = 0
    new_contributions: int = 0
    skipped_duplicates: int = 0
    skipped_ineligible: int = 0
    batches_completed: int = 0
    errors: list[ScanError] = Field(default_factory=list)
    cancelled: bool = False
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    elapsed_seconds: float = 0.0


class SyncError(BaseModel):
    user_id: str
    error: str
    contribution_id: Optional[str] = None


class SyncValidation(BaseModel):
    """Approved records in storage vs. contributions counted in ledgers.

    A mismatch is reported, never repaired.
    """

    approved_in_store: int
    reflected_in_ledgers: int
    orphaned_user_ids: list[str] = Field(default_factory=list)
    users_with_points: int = 0
    is_valid: bool


class SyncReport(BaseModel):
    users_processed: int = 0
    approved_contributions: int = 0
    users_changed: list[str] = Field(default_factory=list)
    errors: list[SyncError] = Field(default_factory=list)
    backup_id: Optional[str] = None
    cancelled: bool = False
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    elapsed_seconds: float = 0.0
    validation: Optional[SyncValidation] = None


class LedgerBackup(BaseModel):
    id: str
    created_at: datetime = Field(default_factory=utc_now)
    ledgers: dict[str, LedgerEntry] = Field(default_factory=dict)


class ScanRequest(BaseModel):
    batchSize: Optional[int] = Field(default=None, ge=1, le=50)
    interBatchDelay: Optional[float] = Field(default=None, ge=0, le=60)


class SyncRequest(BaseModel):
    createBackup: bool = False


def outcome_message(errors: list[Any], noun: str) -> str:
    if not errors:
        return f"{noun} completed"
    return f"{noun} completed with {len(errors)} error(s)"


class ScanOutcome(BaseModel):
    message: str
    report: ScanReport


class SyncOutcome(BaseModel):
    message: str
    report: SyncReport
