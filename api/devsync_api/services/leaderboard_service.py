"""Leaderboard projection over user ledgers."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from devsync_api.models.leaderboard import LeaderboardPage, RankedUser
from devsync_api.models.user import User

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _sort_key(user: User) -> tuple:
    latest = user.ledger.latest_merged_at() or _EPOCH
    # Higher points first, then the more recent latest merge, then login.
    return (-user.ledger.total_points, -latest.timestamp(), user.login.lower(), user.id)


def rank(users: Iterable[User]) -> list[RankedUser]:
    ordered = sorted(users, key=_sort_key)
    return [
        RankedUser(
            rank=position,
            user_id=user.id,
            login=user.login,
            display_name=user.display_name,
            avatar_url=user.avatar_url,
            points=user.ledger.total_points,
            badge_tier=user.ledger.badge_tier,
            badges=list(user.ledger.badges),
            contributions_count=len(user.ledger.contributions),
            latest_merged_at=user.ledger.latest_merged_at(),
        )
        for position, user in enumerate(ordered, start=1)
    ]


def leaderboard_page(users: Iterable[User], page: int = 1, per_page: int = 20) -> LeaderboardPage:
    page = max(1, int(page))
    per_page = max(1, min(100, int(per_page)))
    ranked = rank(users)
    start = (page - 1) * per_page
    return LeaderboardPage(total=len(ranked), page=page, per_page=per_page, items=ranked[start : start + per_page])
