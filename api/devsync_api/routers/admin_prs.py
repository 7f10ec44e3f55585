"""Admin endpoints: review queue, point adjustments, scans and ledger sync."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Request, Response

from devsync_api.adapters.contribution_store import ContributionStore
from devsync_api.models.contribution import (
    AdjustPointsRequest,
    ContributionStatus,
    ContributionSubmit,
    PendingContribution,
    RejectRequest,
    ReviewOutcome,
    SubmitResult,
)
from devsync_api.models.error import ErrorDetail
from devsync_api.models.reports import ScanOutcome, ScanRequest, SyncOutcome, SyncRequest, outcome_message
from devsync_api.models.user import LedgerEntry
from devsync_api.services import intake_service, reconciliation_service, review_service
from devsync_api.services.admin_auth import require_admin
from devsync_api.services.errors import NotFoundError
from devsync_api.services.pipeline_config import PipelineConfig
from devsync_api.services.scan_orchestrator import ScanOrchestrator
from devsync_api.services.scoring_engine import preview_ledger

router = APIRouter()

_ERRORS = {403: {"model": ErrorDetail}, 404: {"model": ErrorDetail}, 409: {"model": ErrorDetail}}


def get_store(request: Request) -> ContributionStore:
    return request.app.state.contribution_store


def get_config(request: Request) -> PipelineConfig:
    return request.app.state.pipeline_config


def _orchestrator(request: Request, config: PipelineConfig) -> ScanOrchestrator:
    return ScanOrchestrator(get_store(request), request.app.state.github_client, config)


@router.get("/pending-prs", response_model=list[PendingContribution], responses={403: {"model": ErrorDetail}})
def list_pending(
    limit: int = Query(1000, ge=1, le=5000),
    store: ContributionStore = Depends(get_store),
    _reviewer: str = Depends(require_admin),
) -> list[PendingContribution]:
    """Records awaiting review, newest submission first."""
    return store.list_contributions(status=ContributionStatus.PENDING, limit=limit)


@router.get("/all-prs", response_model=list[PendingContribution], responses={403: {"model": ErrorDetail}})
def list_all(
    limit: int = Query(1000, ge=1, le=5000),
    store: ContributionStore = Depends(get_store),
    _reviewer: str = Depends(require_admin),
) -> list[PendingContribution]:
    return store.list_contributions(limit=limit)


@router.get("/rejected-prs", response_model=list[PendingContribution], responses={403: {"model": ErrorDetail}})
def list_rejected(
    limit: int = Query(1000, ge=1, le=5000),
    store: ContributionStore = Depends(get_store),
    _reviewer: str = Depends(require_admin),
) -> list[PendingContribution]:
    return store.list_contributions(status=ContributionStatus.REJECTED, limit=limit)


@router.post(
    "/submit-pr",
    response_model=SubmitResult,
    status_code=201,
    responses={200: {"model": SubmitResult}, 400: {"model": ErrorDetail}, 403: {"model": ErrorDetail}},
)
def submit_pr(
    payload: ContributionSubmit,
    response: Response,
    store: ContributionStore = Depends(get_store),
    config: PipelineConfig = Depends(get_config),
    _reviewer: str = Depends(require_admin),
) -> SubmitResult:
    """Queue a merged PR. 201 when created, 200 when the PR was already queued."""
    result = intake_service.submit_payload(store, config, payload)
    if not result.created:
        response.status_code = 200
    return result


@router.post("/pr/{contribution_id}/approve", response_model=ReviewOutcome, responses=_ERRORS)
def approve_pr(
    contribution_id: str,
    store: ContributionStore = Depends(get_store),
    reviewer: str = Depends(require_admin),
) -> ReviewOutcome:
    record = review_service.approve(store, contribution_id, reviewer)
    return ReviewOutcome(message="PR approved successfully", contribution=record)


@router.post("/pr/{contribution_id}/reject", response_model=ReviewOutcome, responses=_ERRORS)
def reject_pr(
    contribution_id: str,
    payload: Optional[RejectRequest] = Body(None),
    store: ContributionStore = Depends(get_store),
    reviewer: str = Depends(require_admin),
) -> ReviewOutcome:
    reason = payload.reason if payload is not None else None
    record = review_service.reject(store, contribution_id, reviewer, reason)
    return ReviewOutcome(message="PR rejected successfully", contribution=record)


@router.patch(
    "/pr/{contribution_id}/points",
    response_model=ReviewOutcome,
    responses={400: {"model": ErrorDetail}, **_ERRORS},
)
def adjust_pr_points(
    contribution_id: str,
    payload: AdjustPointsRequest,
    store: ContributionStore = Depends(get_store),
    _reviewer: str = Depends(require_admin),
) -> ReviewOutcome:
    """Override the points of an approved PR. Takes effect on the next ledger sync."""
    record = review_service.adjust_points(store, contribution_id, payload.points)
    return ReviewOutcome(message="PR points updated successfully", contribution=record)


@router.delete("/pr/{contribution_id}", responses=_ERRORS)
def delete_pr(
    contribution_id: str,
    store: ContributionStore = Depends(get_store),
    _reviewer: str = Depends(require_admin),
) -> dict:
    """Permanently remove a rejected PR. The PR will not be queued again."""
    review_service.delete(store, contribution_id)
    return {"message": "PR deleted successfully", "id": contribution_id}


@router.post("/sync-pending-prs", response_model=SyncOutcome, responses={403: {"model": ErrorDetail}})
def sync_pending_prs(
    payload: Optional[SyncRequest] = Body(None),
    store: ContributionStore = Depends(get_store),
    _reviewer: str = Depends(require_admin),
) -> SyncOutcome:
    """Recompute every ledger from approved PRs. Safe to re-run."""
    create_backup = payload.createBackup if payload is not None else False
    report = reconciliation_service.reconcile(store, create_backup=create_backup)
    return SyncOutcome(message=outcome_message(report.errors, "Ledger sync"), report=report)


@router.post("/scan-prs", response_model=ScanOutcome, responses={403: {"model": ErrorDetail}})
async def scan_prs(
    request: Request,
    payload: Optional[ScanRequest] = Body(None),
    store: ContributionStore = Depends(get_store),
    config: PipelineConfig = Depends(get_config),
    _reviewer: str = Depends(require_admin),
) -> ScanOutcome:
    """Scan every known user's merged PRs against the accepted repositories."""
    if payload is not None:
        config = config.with_overrides(batch_size=payload.batchSize, inter_batch_delay=payload.interBatchDelay)
    report = await _orchestrator(request, config).scan(store.list_users())
    return ScanOutcome(message=outcome_message(report.errors, "PR scan"), report=report)


@router.post("/users/{user_id}/resync", response_model=ScanOutcome, responses=_ERRORS)
async def resync_user(
    user_id: str,
    request: Request,
    store: ContributionStore = Depends(get_store),
    config: PipelineConfig = Depends(get_config),
    _reviewer: str = Depends(require_admin),
) -> ScanOutcome:
    user = store.get_user(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    report = await _orchestrator(request, config).scan_user(user)
    return ScanOutcome(message=outcome_message(report.errors, "PR scan"), report=report)


@router.get("/users/{user_id}/ledger-preview", response_model=LedgerEntry, responses=_ERRORS)
def ledger_preview(
    user_id: str,
    store: ContributionStore = Depends(get_store),
    _reviewer: str = Depends(require_admin),
) -> LedgerEntry:
    """Ledger the next sync would write for this user. Nothing is saved."""
    return preview_ledger(store, user_id)
