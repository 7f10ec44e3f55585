from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LedgerContribution(BaseModel):
    contribution_id: str
    repo_url: str
    number: int
    title: str
    merged_at: datetime
    points: int


class LedgerEntry(BaseModel):
    """Authoritative points total for one user.

    Only reconciliation writes it, always as a full recomputation from the
    user's approved contributions.
    """

    total_points: int = 0
    badge_tier: str = "Cursed Newbie | Just awakened....."
    activity_badge: Optional[str] = None
    badges: list[str] = Field(default_factory=lambda: ["Newcomer"])
    contributions: list[LedgerContribution] = Field(default_factory=list)

    def latest_merged_at(self) -> datetime | None:
        if not self.contributions:
            return None
        return max(c.merged_at for c in self.contributions)


class User(BaseModel):
    id: str = Field(min_length=1)  # stable GitHub account id
    login: str = Field(min_length=1)
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    ledger: LedgerEntry = Field(default_factory=LedgerEntry)

    model_config = ConfigDict(from_attributes=True)


class UserUpsert(BaseModel):
    login: str = Field(min_length=1)
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
