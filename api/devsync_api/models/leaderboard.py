from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class RankedUser(BaseModel):
    rank: int = Field(ge=1)
    user_id: str
    login: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    points: int
    badge_tier: str
    badges: list[str]
    contributions_count: int
    latest_merged_at: Optional[datetime] = None


class LeaderboardPage(BaseModel):
    total: int
    page: int
    per_page: int
    items: list[RankedUser]
