"""Review state machine for queued contributions.

pending -> approved | rejected. Approved records may have their points
adjusted; rejected records may be deleted. Every transition is a
compare-and-set on the current status, so a concurrent reviewer who got
there first turns the second call into an InvalidStateError.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from devsync_api.adapters.contribution_store import ContributionStore
from devsync_api.models.contribution import (
    ApprovedReview,
    ContributionStatus,
    PendingContribution,
    RejectedReview,
)
from devsync_api.services.errors import InvalidStateError, NotFoundError, ValidationError

log = logging.getLogger(__name__)

_INTEGER_TEXT = re.compile(r"-?[0-9]+")


def get(store: ContributionStore, contribution_id: str) -> PendingContribution:
    record = store.get_contribution(contribution_id)
    if record is None:
        raise NotFoundError(f"Contribution {contribution_id} not found")
    return record


def _require(record: PendingContribution, expected: ContributionStatus, action: str) -> None:
    if record.status != expected:
        raise InvalidStateError(
            f"Cannot {action} contribution {record.id}: status is {record.status.value}, expected {expected.value}"
        )


def _lost_race(store: ContributionStore, contribution_id: str, expected: ContributionStatus, action: str):
    current = store.get_contribution(contribution_id)
    if current is None:
        return NotFoundError(f"Contribution {contribution_id} not found")
    return InvalidStateError(
        f"Cannot {action} contribution {contribution_id}: status is {current.status.value}, expected {expected.value}"
    )


def approve(store: ContributionStore, contribution_id: str, reviewer: str) -> PendingContribution:
    record = get(store, contribution_id)
    _require(record, ContributionStatus.PENDING, "approve")
    updated = store.transition_review(
        contribution_id, ContributionStatus.PENDING, ApprovedReview(reviewed_by=reviewer)
    )
    if updated is None:
        raise _lost_race(store, contribution_id, ContributionStatus.PENDING, "approve")
    log.info("contribution_approved id=%s reviewer=%s points=%s", contribution_id, reviewer, updated.effective_points)
    return updated


def reject(
    store: ContributionStore, contribution_id: str, reviewer: str, reason: Optional[str] = None
) -> PendingContribution:
    record = get(store, contribution_id)
    _require(record, ContributionStatus.PENDING, "reject")
    reason = (reason or "").strip() or None
    updated = store.transition_review(
        contribution_id, ContributionStatus.PENDING, RejectedReview(reviewed_by=reviewer, reason=reason)
    )
    if updated is None:
        raise _lost_race(store, contribution_id, ContributionStatus.PENDING, "reject")
    log.info("contribution_rejected id=%s reviewer=%s", contribution_id, reviewer)
    return updated


def parse_points(value: Any) -> int:
    """Accept non-negative integers, integral floats and digit strings. Booleans are not numbers here."""
    if isinstance(value, bool) or value is None:
        raise ValidationError("points must be a non-negative integer")
    if isinstance(value, int):
        points = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError("points must be a whole number")
        points = int(value)
    elif isinstance(value, str):
        raw = value.strip()
        if not _INTEGER_TEXT.fullmatch(raw):
            raise ValidationError(f"points must be a number, got {value!r}")
        points = int(raw)
    else:
        raise ValidationError("points must be a non-negative integer")
    if points < 0:
        raise ValidationError("points must be non-negative")
    return points


def adjust_points(store: ContributionStore, contribution_id: str, new_points: Any) -> PendingContribution:
    points = parse_points(new_points)
    record = get(store, contribution_id)
    _require(record, ContributionStatus.APPROVED, "adjust points of")
    review = record.review.model_copy(update={"adjusted_points": points})
    updated = store.transition_review(contribution_id, ContributionStatus.APPROVED, review)
    if updated is None:
        raise _lost_race(store, contribution_id, ContributionStatus.APPROVED, "adjust points of")
    log.info(
        "contribution_points_adjusted id=%s suggested=%s adjusted=%s",
        contribution_id,
        updated.suggested_points,
        points,
    )
    return updated


def delete(store: ContributionStore, contribution_id: str) -> None:
    record = get(store, contribution_id)
    _require(record, ContributionStatus.REJECTED, "delete")
    if not store.delete_contribution(contribution_id, ContributionStatus.REJECTED):
        raise _lost_race(store, contribution_id, ContributionStatus.REJECTED, "delete")
    log.info("contribution_deleted id=%s", contribution_id)
