"""Pydantic models."""

from devsync_api.models.contribution import (
    ApprovedReview,
    ContributionStatus,
    PendingContribution,
    PendingReview,
    RejectedReview,
)
from devsync_api.models.error import ErrorDetail
from devsync_api.models.repository import AcceptedRepository, RepositoryReviewStatus
from devsync_api.models.user import LedgerEntry, User

__all__ = [
    "AcceptedRepository",
    "ApprovedReview",
    "ContributionStatus",
    "ErrorDetail",
    "LedgerEntry",
    "PendingContribution",
    "PendingReview",
    "RejectedReview",
    "RepositoryReviewStatus",
    "User",
]
