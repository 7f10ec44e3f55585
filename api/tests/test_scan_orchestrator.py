"""Tests for the batch scan: filtering, dedup, partial failure, pacing, cancellation."""

from __future__ import annotations

import asyncio
import threading
from datetime import datetime, timezone
from typing import Optional

import pytest

from devsync_api.models.contribution import ContributionStatus
from devsync_api.models.repository import AcceptedRepository, RepositoryReviewStatus
from devsync_api.models.user import User
from devsync_api.services import intake_service
from devsync_api.services.github_client import GitHubAPIError, MergedPullRequest
from devsync_api.services.pipeline_config import PipelineConfig
from devsync_api.services.scan_orchestrator import BatchPacer, ScanOrchestrator


def _pr(number: int, repo: str = "acme/api", day: int = 10, month: int = 6) -> MergedPullRequest:
    return MergedPullRequest(
        number=number,
        title=f"PR {number}",
        merged_at=datetime(2025, month, day, tzinfo=timezone.utc),
        repo_url=f"https://github.com/{repo}",
    )


class FakePullRequestSource:
    def __init__(
        self,
        prs_by_login: dict[str, list[MergedPullRequest]],
        failing: tuple[str, ...] = (),
        flaky: Optional[dict[str, int]] = None,
        remaining: Optional[int] = None,
        on_call=None,
    ) -> None:
        self.prs_by_login = prs_by_login
        self.failing = set(failing)
        self.flaky = dict(flaky or {})
        self.last_rate_limit_remaining = remaining
        self.on_call = on_call
        self.calls: list[str] = []

    async def list_merged_pull_requests(self, login: str, max_pages: int = 5) -> list[MergedPullRequest]:
        self.calls.append(login)
        if self.on_call is not None:
            self.on_call(login)
        if login in self.failing:
            raise GitHubAPIError(f"GitHub API error 502 for {login}")
        if self.flaky.get(login, 0) > 0:
            self.flaky[login] -= 1
            raise GitHubAPIError("GitHub API request failed: timed out")
        return list(self.prs_by_login.get(login, []))


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _users(n: int) -> list[User]:
    return [User(id=str(2000 + i), login=f"dev{i}") for i in range(n)]


def _orchestrator(store, client, batch_size=5, max_retries=0, sleep=None, threshold=200):
    config = PipelineConfig(max_retries=max_retries, retry_delay=1.5)
    pacer = BatchPacer(
        batch_size=batch_size,
        base_delay=2.0,
        emergency_delay=8.0,
        low_budget_threshold=threshold,
        sleep=sleep or RecordingSleep(),
    )
    return ScanOrchestrator(store, client, config, pacer=pacer)


@pytest.mark.asyncio
async def test_partial_failure_does_not_abort_scan(store):
    users = _users(5)
    client = FakePullRequestSource(
        {u.login: [_pr(100 + i)] for i, u in enumerate(users)},
        failing=("dev2",),
    )

    report = await _orchestrator(store, client).scan(users)

    assert len(report.errors) == 1
    assert report.errors[0].login == "dev2"
    assert report.errors[0].user_id == "2002"
    assert "502" in report.errors[0].error
    assert report.users_scanned == 5
    assert report.new_contributions == 4
    queued_users = {c.user_id for c in store.list_contributions(status=ContributionStatus.PENDING)}
    assert queued_users == {"2000", "2001", "2003", "2004"}


@pytest.mark.asyncio
async def test_ineligible_prs_are_filtered(store):
    users = _users(1)
    client = FakePullRequestSource(
        {
            "dev0": [
                _pr(1, day=1, month=3),  # merged before program start
                _pr(2, repo="someone/else"),  # not an accepted repository
                _pr(3, repo="Acme/Web"),
            ]
        }
    )

    report = await _orchestrator(store, client).scan(users)

    assert report.new_contributions == 1
    assert report.skipped_ineligible == 2
    [record] = store.list_contributions()
    assert record.number == 3
    assert record.repo_url == "https://github.com/acme/web"
    assert record.suggested_points == 80


@pytest.mark.asyncio
async def test_rescan_is_idempotent(store):
    users = _users(3)
    client = FakePullRequestSource({u.login: [_pr(1), _pr(2)] for u in users})
    orchestrator = _orchestrator(store, client)

    first = await orchestrator.scan(users)
    second = await orchestrator.scan(users)

    assert first.new_contributions == 6
    assert second.new_contributions == 0
    assert second.skipped_duplicates == 6
    assert len(store.list_contributions()) == 6


@pytest.mark.asyncio
async def test_batches_are_paced_with_base_delay(store):
    users = _users(7)
    sleep = RecordingSleep()
    client = FakePullRequestSource({}, remaining=4000)

    report = await _orchestrator(store, client, batch_size=3, sleep=sleep).scan(users)

    assert report.batches_completed == 3
    assert sleep.delays == [2.0, 2.0]
    assert client.calls == [u.login for u in users]


@pytest.mark.asyncio
async def test_low_rate_limit_budget_switches_to_emergency_delay(store):
    users = _users(4)
    sleep = RecordingSleep()
    client = FakePullRequestSource({}, remaining=50)

    await _orchestrator(store, client, batch_size=2, sleep=sleep, threshold=200).scan(users)

    assert sleep.delays == [8.0]


def test_pacer_delay_selection():
    pacer = BatchPacer(base_delay=2.0, emergency_delay=8.0, low_budget_threshold=200)
    assert pacer.delay_for(None) == 2.0
    assert pacer.delay_for(200) == 2.0
    assert pacer.delay_for(199) == 8.0
    assert [len(b) for b in BatchPacer(batch_size=2).batches(_users(5))] == [2, 2, 1]


@pytest.mark.asyncio
async def test_transient_failures_are_retried(store):
    users = _users(1)
    sleep = RecordingSleep()
    client = FakePullRequestSource({"dev0": [_pr(5)]}, flaky={"dev0": 2})

    report = await _orchestrator(store, client, max_retries=2, sleep=sleep).scan(users)

    assert report.errors == []
    assert report.new_contributions == 1
    assert client.calls == ["dev0", "dev0", "dev0"]
    assert sleep.delays == [1.5, 1.5]


@pytest.mark.asyncio
async def test_exhausted_retries_are_reported(store):
    users = _users(1)
    client = FakePullRequestSource({"dev0": [_pr(5)]}, flaky={"dev0": 5})

    report = await _orchestrator(store, client, max_retries=1).scan(users)

    assert len(report.errors) == 1
    assert client.calls == ["dev0", "dev0"]
    assert store.list_contributions() == []


@pytest.mark.asyncio
async def test_cancel_before_start_scans_nothing(store):
    cancel = asyncio.Event()
    cancel.set()
    client = FakePullRequestSource({})

    report = await _orchestrator(store, client).scan(_users(3), cancel_event=cancel)

    assert report.cancelled is True
    assert report.batches_completed == 0
    assert client.calls == []


@pytest.mark.asyncio
async def test_cancel_between_batches_keeps_created_records(store):
    users = _users(4)
    cancel = asyncio.Event()
    client = FakePullRequestSource(
        {u.login: [_pr(1)] for u in users},
        on_call=lambda login: cancel.set(),
    )
    sleep = RecordingSleep()

    report = await _orchestrator(store, client, batch_size=2, sleep=sleep).scan(users, cancel_event=cancel)

    assert report.cancelled is True
    assert report.batches_completed == 1
    assert report.new_contributions == 2
    assert sleep.delays == []
    assert len(store.list_contributions()) == 2


@pytest.mark.asyncio
async def test_scan_user_uses_store_registry(store):
    alice = store.get_user("1001")
    client = FakePullRequestSource({"alice": [_pr(9)]})

    report = await _orchestrator(store, client).scan_user(alice)

    assert report.users_total == 1
    assert report.new_contributions == 1
    assert store.list_contributions()[0].user_login == "alice"


@pytest.mark.asyncio
async def test_explicit_repository_list_only_counts_accepted_entries(store):
    users = _users(1)
    client = FakePullRequestSource({"dev0": [_pr(1, repo="acme/api"), _pr(2, repo="acme/docs")]})
    repos = [
        AcceptedRepository(url="https://github.com/acme/api", points=50),
        AcceptedRepository(
            url="https://github.com/acme/docs", points=30, review_status=RepositoryReviewStatus.PENDING
        ),
    ]

    report = await _orchestrator(store, client).scan(users, accepted_repos=repos)

    assert report.new_contributions == 1
    assert report.skipped_ineligible == 1
    [record] = store.list_contributions()
    assert record.repo_url == "https://github.com/acme/api"


@pytest.mark.asyncio
async def test_intake_runs_off_the_event_loop_thread(store, monkeypatch):
    loop_thread = threading.get_ident()
    intake_threads: list[int] = []
    submit = intake_service.submit

    def recording_submit(*args, **kwargs):
        intake_threads.append(threading.get_ident())
        return submit(*args, **kwargs)

    monkeypatch.setattr(intake_service, "submit", recording_submit)
    client = FakePullRequestSource({"dev0": [_pr(1), _pr(2, repo="acme/web")]})

    report = await _orchestrator(store, client).scan(_users(1))

    assert report.new_contributions == 2
    assert len(intake_threads) == 2
    assert loop_thread not in intake_threads
