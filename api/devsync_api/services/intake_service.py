"""Submission intake: validate a candidate contribution and queue it exactly once."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from devsync_api.adapters.contribution_store import ContributionStore
from devsync_api.models.contribution import ContributionSubmit, PendingContribution, SubmitResult
from devsync_api.models.repository import canonical_repo_url
from devsync_api.services.errors import ValidationError
from devsync_api.services.pipeline_config import PipelineConfig, as_utc

log = logging.getLogger(__name__)


def _suggested_points_for(store: ContributionStore, repo_url: str, config: PipelineConfig) -> int:
    repository = store.get_repository(repo_url)
    return repository.points if repository is not None else config.default_repo_points


def submit(
    store: ContributionStore,
    config: PipelineConfig,
    *,
    user_id: str,
    repo_url: str,
    number: int,
    title: str,
    merged_at: datetime,
    suggested_points: Optional[int] = None,
    user_login: str = "",
) -> SubmitResult:
    """Queue a merged PR for review unless (user, repo, number) was already queued.

    Duplicates are a no-op that returns the stored record with created=False.
    """
    if not (user_id or "").strip():
        raise ValidationError("user_id is required")
    try:
        canonical = canonical_repo_url(repo_url)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if isinstance(number, bool) or not isinstance(number, int) or number < 1:
        raise ValidationError("number must be a positive integer")
    if not (title or "").strip():
        raise ValidationError("title is required")
    merged = as_utc(merged_at)
    if not config.is_eligible(merged):
        raise ValidationError(
            f"merged_at {merged.isoformat()} is before program start {config.program_start.date().isoformat()}"
        )
    if suggested_points is None:
        suggested_points = _suggested_points_for(store, canonical, config)
    if isinstance(suggested_points, bool) or not isinstance(suggested_points, int) or suggested_points < 0:
        raise ValidationError("suggested_points must be a non-negative integer")

    record = PendingContribution(
        user_id=user_id.strip(),
        user_login=user_login,
        repo_url=canonical,
        number=number,
        title=title.strip(),
        merged_at=merged,
        suggested_points=suggested_points,
    )
    stored, created = store.insert_contribution_if_absent(record)
    if created:
        log.info(
            "contribution_queued id=%s user_id=%s repo=%s number=%s points=%s",
            record.id,
            record.user_id,
            record.repository,
            record.number,
            record.suggested_points,
        )
    else:
        log.debug("contribution_duplicate user_id=%s repo=%s number=%s", record.user_id, canonical, number)
    return SubmitResult(created=created, contribution=stored)


def submit_payload(store: ContributionStore, config: PipelineConfig, payload: ContributionSubmit) -> SubmitResult:
    return submit(
        store,
        config,
        user_id=payload.user_id,
        user_login=payload.user_login,
        repo_url=payload.repo_url,
        number=payload.number,
        title=payload.title,
        merged_at=payload.merged_at,
        suggested_points=payload.suggested_points,
    )
