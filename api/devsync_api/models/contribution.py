"""Review records for candidate contributions (merged pull requests)."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ContributionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PendingReview(BaseModel):
    status: Literal["pending"] = "pending"


class ApprovedReview(BaseModel):
    status: Literal["approved"] = "approved"
    reviewed_by: str
    reviewed_at: datetime = Field(default_factory=utc_now)
    adjusted_points: Optional[int] = Field(default=None, ge=0)


class RejectedReview(BaseModel):
    status: Literal["rejected"] = "rejected"
    reviewed_by: str
    reviewed_at: datetime = Field(default_factory=utc_now)
    reason: Optional[str] = None


ReviewState = Annotated[
    Union[PendingReview, ApprovedReview, RejectedReview],
    Field(discriminator="status"),
]


class PendingContribution(BaseModel):
    """One merged pull request queued for (or past) admin review.

    ``suggested_points`` is fixed at intake. Point adjustments live on the
    ``ApprovedReview`` state, so only approved records can carry them.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str = Field(min_length=1)
    user_login: str = ""
    repo_url: str = Field(min_length=1)
    number: int = Field(ge=1)
    title: str
    merged_at: datetime
    suggested_points: int = Field(ge=0)
    submitted_at: datetime = Field(default_factory=utc_now)
    review: ReviewState = Field(default_factory=PendingReview)

    model_config = ConfigDict(from_attributes=True)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> ContributionStatus:
        return ContributionStatus(self.review.status)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def effective_points(self) -> int:
        if isinstance(self.review, ApprovedReview) and self.review.adjusted_points is not None:
            return self.review.adjusted_points
        return self.suggested_points

    @computed_field  # type: ignore[prop-decorator]
    @property
    def repository(self) -> str:
        """``owner/repo`` form of the repository URL."""
        return self.repo_url.replace("https://github.com/", "", 1)

    def dedup_key(self) -> tuple[str, str, int]:
        return (self.user_id, self.repo_url, self.number)


class ContributionSubmit(BaseModel):
    """POST /api/admin/submit-pr body."""

    user_id: str = Field(min_length=1)
    user_login: str = ""
    repo_url: str = Field(min_length=1)
    number: int
    title: str
    merged_at: datetime
    suggested_points: Optional[int] = None


class SubmitResult(BaseModel):
    created: bool
    # None when the key belongs to a rejected record that was deleted.
    contribution: Optional[PendingContribution] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class AdjustPointsRequest(BaseModel):
    # Loosely typed so the review service can answer non-numeric input with a 400.
    points: Union[int, float, str, bool, None] = None


class ReviewOutcome(BaseModel):
    message: str
    contribution: PendingContribution
