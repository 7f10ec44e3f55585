"""Batch scan of GitHub merged pull requests into the review queue.

Users are scanned in fixed-size batches. Within a batch each user's query
runs concurrently; between batches the pacer waits, stretching the delay
when the GitHub budget runs low. A failure for one user is recorded in the
report and never stops the scan. Intake is deduplicating, so an interrupted
scan can simply be run again.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol, Sequence

from devsync_api.adapters.contribution_store import ContributionStore
from devsync_api.models.contribution import utc_now
from devsync_api.models.reports import ScanError, ScanReport
from devsync_api.models.repository import AcceptedRepository, RepositoryReviewStatus, canonical_repo_url
from devsync_api.models.user import User
from devsync_api.services import intake_service
from devsync_api.services.errors import ValidationError
from devsync_api.services.github_client import MergedPullRequest
from devsync_api.services.pipeline_config import PipelineConfig

log = logging.getLogger(__name__)


class PullRequestSource(Protocol):
    last_rate_limit_remaining: Optional[int]

    async def list_merged_pull_requests(self, login: str, max_pages: int = 5) -> list[MergedPullRequest]:
        ...


@dataclass
class BatchPacer:
    """Batch sizing and inter-batch delays. Owns all rate-limit pacing state."""

    batch_size: int = 5
    base_delay: float = 2.0
    emergency_delay: float = 8.0
    low_budget_threshold: int = 200
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None

    @classmethod
    def from_config(cls, config: PipelineConfig) -> BatchPacer:
        return cls(
            batch_size=config.batch_size,
            base_delay=config.inter_batch_delay,
            emergency_delay=config.emergency_delay,
            low_budget_threshold=config.low_budget_threshold,
        )

    def batches(self, items: Sequence[User]) -> list[list[User]]:
        size = max(1, int(self.batch_size))
        return [list(items[i : i + size]) for i in range(0, len(items), size)]

    def delay_for(self, remaining_budget: Optional[int]) -> float:
        if remaining_budget is not None and remaining_budget < self.low_budget_threshold:
            return max(self.base_delay, self.emergency_delay)
        return self.base_delay

    async def wait(self, seconds: float) -> None:
        if seconds <= 0:
            return
        await (self.sleep or asyncio.sleep)(seconds)

    async def pause(self, remaining_budget: Optional[int]) -> float:
        delay = self.delay_for(remaining_budget)
        if delay != self.base_delay:
            log.warning(
                "scan_low_rate_limit remaining=%s threshold=%s delay_s=%.1f",
                remaining_budget,
                self.low_budget_threshold,
                delay,
            )
        await self.wait(delay)
        return delay


class ScanOrchestrator:
    def __init__(
        self,
        store: ContributionStore,
        client: PullRequestSource,
        config: PipelineConfig,
        pacer: Optional[BatchPacer] = None,
    ) -> None:
        self.store = store
        self.client = client
        self.config = config
        self.pacer = pacer or BatchPacer.from_config(config)

    def _accepted_index(
        self, accepted_repos: Optional[Iterable[AcceptedRepository]]
    ) -> dict[str, AcceptedRepository]:
        repos = self.store.list_accepted_repositories() if accepted_repos is None else accepted_repos
        return {repo.url: repo for repo in repos if repo.review_status == RepositoryReviewStatus.ACCEPTED}

    async def _fetch_with_retries(self, user: User) -> list[MergedPullRequest]:
        attempts = self.config.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await self.client.list_merged_pull_requests(user.login, max_pages=self.config.max_pages)
            except Exception as exc:
                if attempt >= attempts:
                    raise
                log.info(
                    "scan_user_retry user_id=%s login=%s attempt=%d error=%s",
                    user.id,
                    user.login,
                    attempt,
                    exc,
                )
                await self.pacer.wait(self.config.retry_delay)
        return []

    async def _queue(
        self, user: User, pr: MergedPullRequest, accepted: dict[str, AcceptedRepository], report: ScanReport
    ) -> None:
        if not self.config.is_eligible(pr.merged_at):
            report.skipped_ineligible += 1
            return
        try:
            repo_url = canonical_repo_url(pr.repo_url)
        except ValueError:
            report.skipped_ineligible += 1
            return
        repository = accepted.get(repo_url)
        if repository is None:
            report.skipped_ineligible += 1
            return
        try:
            # Store calls block (SQL sessions), so intake runs off the event loop.
            result = await asyncio.to_thread(
                intake_service.submit,
                self.store,
                self.config,
                user_id=user.id,
                user_login=user.login,
                repo_url=repo_url,
                number=pr.number,
                title=pr.title,
                merged_at=pr.merged_at,
                suggested_points=repository.points,
            )
        except ValidationError as exc:
            log.debug(
                "scan_pr_rejected_by_intake user_id=%s repo=%s number=%s error=%s",
                user.id,
                repo_url,
                pr.number,
                exc.detail,
            )
            report.skipped_ineligible += 1
            return
        if result.created:
            report.new_contributions += 1
        else:
            report.skipped_duplicates += 1

    async def _scan_one(self, user: User, accepted: dict[str, AcceptedRepository], report: ScanReport) -> None:
        try:
            pull_requests = await self._fetch_with_retries(user)
            for pr in pull_requests:
                await self._queue(user, pr, accepted, report)
        except Exception as exc:
            report.errors.append(ScanError(user_id=user.id, login=user.login, error=str(exc) or type(exc).__name__))
            log.warning("scan_user_failed user_id=%s login=%s error=%s", user.id, user.login, exc)
        finally:
            report.users_scanned += 1

    async def scan(
        self,
        users: Sequence[User],
        accepted_repos: Optional[Iterable[AcceptedRepository]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ScanReport:
        started = time.perf_counter()
        accepted = self._accepted_index(accepted_repos)
        report = ScanReport(users_total=len(users))
        batches = self.pacer.batches(users)
        log.info(
            "scan_started users=%d batches=%d batch_size=%d accepted_repos=%d",
            len(users),
            len(batches),
            self.pacer.batch_size,
            len(accepted),
        )

        for index, batch in enumerate(batches, start=1):
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                log.warning(
                    "scan_cancelled batches_completed=%d users_scanned=%d",
                    report.batches_completed,
                    report.users_scanned,
                )
                break
            batch_started = time.perf_counter()
            await asyncio.gather(*(self._scan_one(user, accepted, report) for user in batch))
            report.batches_completed += 1
            log.info(
                "scan_batch_completed batch=%d/%d users=%d new=%d errors=%d rate_limit_remaining=%s elapsed_ms=%.2f",
                index,
                len(batches),
                len(batch),
                report.new_contributions,
                len(report.errors),
                getattr(self.client, "last_rate_limit_remaining", None),
                (time.perf_counter() - batch_started) * 1000.0,
            )
            if index < len(batches) and not (cancel_event is not None and cancel_event.is_set()):
                await self.pacer.pause(getattr(self.client, "last_rate_limit_remaining", None))

        report.finished_at = utc_now()
        report.elapsed_seconds = round(time.perf_counter() - started, 3)
        log.info(
            "scan_completed users_scanned=%d/%d new=%d duplicates=%d ineligible=%d errors=%d "
            "cancelled=%s elapsed_s=%.3f",
            report.users_scanned,
            report.users_total,
            report.new_contributions,
            report.skipped_duplicates,
            report.skipped_ineligible,
            len(report.errors),
            report.cancelled,
            report.elapsed_seconds,
        )
        return report

    async def scan_user(
        self, user: User, accepted_repos: Optional[Iterable[AcceptedRepository]] = None
    ) -> ScanReport:
        return await self.scan([user], accepted_repos)
