"""Pure ledger computation: points total, tier and badges from approved contributions."""

from __future__ import annotations

from typing import Iterable, Optional

from devsync_api.adapters.contribution_store import ContributionStore
from devsync_api.models.contribution import ContributionStatus, PendingContribution
from devsync_api.models.user import LedgerContribution, LedgerEntry
from devsync_api.services.errors import NotFoundError

# (threshold, name), ascending.
POINT_TIERS: tuple[tuple[int, str], ...] = (
    (0, "Cursed Newbie | Just awakened....."),
    (100, "Graveyard Shifter | Lost but curious"),
    (250, "Night Stalker | Shadows are friends"),
    (500, "Skeleton of Structure | Casts magic on code"),
    (1000, "Phantom Architect | Builds from beyond"),
    (2000, "Haunted Debugger | Haunting every broken line"),
    (3500, "Lord of Shadows | Master of the unseen"),
    (5000, "Dark Sorcerer | Controls the dark arts"),
    (7500, "Demon Crafter | Shapes the cursed world"),
    (10000, "Eternal Revenge | Undying ghost"),
)

ACTIVITY_BADGES: tuple[tuple[int, str], ...] = (
    (1, "First Contribution"),
    (5, "Active Contributor"),
    (10, "Super Contributor"),
)

BASE_BADGE = "Newcomer"


def badge_for_points(total: int) -> str:
    tier = POINT_TIERS[0][1]
    for threshold, name in POINT_TIERS:
        if total >= threshold:
            tier = name
    return tier


def activity_badge_for_count(count: int) -> Optional[str]:
    badge = None
    for threshold, name in ACTIVITY_BADGES:
        if count >= threshold:
            badge = name
    return badge


def earned_badges(total: int, count: int) -> list[str]:
    badges = [BASE_BADGE]
    badges.extend(name for threshold, name in ACTIVITY_BADGES if count >= threshold)
    badges.extend(name for threshold, name in POINT_TIERS if total >= threshold)
    return badges


def compute_ledger(approved: Iterable[PendingContribution]) -> LedgerEntry:
    """Recompute a user's ledger from their full approved set.

    Deterministic: the same approved set always yields an equal LedgerEntry,
    regardless of input order. Raises ValueError on a record that is not
    approved or carries negative points.
    """
    rows: list[LedgerContribution] = []
    for record in approved:
        if record.status != ContributionStatus.APPROVED:
            raise ValueError(f"contribution {record.id} is {record.status.value}, not approved")
        points = record.effective_points
        if not isinstance(points, int) or isinstance(points, bool) or points < 0:
            raise ValueError(f"contribution {record.id} has invalid points: {points!r}")
        rows.append(
            LedgerContribution(
                contribution_id=record.id,
                repo_url=record.repo_url,
                number=record.number,
                title=record.title,
                merged_at=record.merged_at,
                points=points,
            )
        )

    rows.sort(key=lambda c: (c.merged_at, c.repo_url, c.number))
    total = sum(c.points for c in rows)
    return LedgerEntry(
        total_points=total,
        badge_tier=badge_for_points(total),
        activity_badge=activity_badge_for_count(len(rows)),
        badges=earned_badges(total, len(rows)),
        contributions=rows,
    )


def preview_ledger(store: ContributionStore, user_id: str) -> LedgerEntry:
    """What reconciliation would write for one user right now. Writes nothing."""
    if store.get_user(user_id) is None:
        raise NotFoundError(f"User {user_id} not found")
    return compute_ledger(store.list_approved_for_user(user_id))
