"""Tests for the leaderboard projection."""

from datetime import datetime, timezone

from devsync_api.models.user import LedgerContribution, LedgerEntry, User
from devsync_api.services.leaderboard_service import leaderboard_page, rank


def _user(uid: str, login: str, points: int, latest_day: int | None = None) -> User:
    contributions = []
    if latest_day is not None:
        contributions.append(
            LedgerContribution(
                contribution_id=f"c-{uid}",
                repo_url="https://github.com/acme/api",
                number=int(uid),
                title="PR",
                merged_at=datetime(2025, 8, latest_day, tzinfo=timezone.utc),
                points=points,
            )
        )
    return User(id=uid, login=login, ledger=LedgerEntry(total_points=points, contributions=contributions))


def test_rank_orders_by_points_descending():
    ranked = rank([_user("1", "amy", 50, 1), _user("2", "ben", 300, 1), _user("3", "cat", 120, 1)])
    assert [r.login for r in ranked] == ["ben", "cat", "amy"]
    assert [r.rank for r in ranked] == [1, 2, 3]


def test_tie_goes_to_more_recent_contribution():
    older = _user("1", "amy", 100, latest_day=2)
    newer = _user("2", "zed", 100, latest_day=20)

    ranked = rank([older, newer])

    assert [r.login for r in ranked] == ["zed", "amy"]
    assert ranked[0].latest_merged_at == datetime(2025, 8, 20, tzinfo=timezone.utc)


def test_full_tie_falls_back_to_login():
    ranked = rank([_user("2", "Zoe", 0), _user("1", "adam", 0)])
    assert [r.login for r in ranked] == ["adam", "Zoe"]


def test_users_without_contributions_rank_after_equal_points_with_history():
    ranked = rank([_user("1", "amy", 0), _user("2", "ben", 0, latest_day=1)])
    assert [r.login for r in ranked] == ["ben", "amy"]


def test_ranks_are_contiguous_across_pages():
    users = [_user(str(i), f"user{i:02d}", points=i * 10, latest_day=1) for i in range(1, 26)]

    page = leaderboard_page(users, page=3, per_page=10)

    assert page.total == 25
    assert page.page == 3
    assert [r.rank for r in page.items] == [21, 22, 23, 24, 25]
    assert page.items[0].points == 50
    assert page.items[-1].login == "user01"


def test_page_past_the_end_is_empty():
    page = leaderboard_page([_user("1", "amy", 10, 1)], page=5, per_page=10)
    assert page.total == 1
    assert page.items == []
