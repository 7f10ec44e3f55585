from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from devsync_api.adapters.contribution_store import ContributionStore
from devsync_api.models.leaderboard import LeaderboardPage
from devsync_api.services import leaderboard_service

router = APIRouter()


def get_store(request: Request) -> ContributionStore:
    return request.app.state.contribution_store


@router.get("/leaderboard", response_model=LeaderboardPage)
def get_leaderboard(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    store: ContributionStore = Depends(get_store),
) -> LeaderboardPage:
    """Users ranked by ledger points. Ties go to the more recent contributor."""
    return leaderboard_service.leaderboard_page(store.list_users(), page=page, per_page=per_page)
