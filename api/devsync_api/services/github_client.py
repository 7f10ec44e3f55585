"""GitHub API client for merged pull request discovery.

GraphQL wrapper with:
- optional token auth (GITHUB_TOKEN / GH_TOKEN)
- rate-limit handling (sleep until reset when exhausted)
- cursor pagination capped by max_pages
- last observed rate-limit budget exposed for scan pacing
"""

from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import httpx

from devsync_api.services.pipeline_config import as_utc

MERGED_PULL_REQUESTS_QUERY = """
query($login: String!, $first: Int!, $after: String) {
  user(login: $login) {
    pullRequests(first: $first, after: $after, states: MERGED,
                 orderBy: {field: UPDATED_AT, direction: DESC}) {
      pageInfo { hasNextPage endCursor }
      nodes {
        number
        title
        mergedAt
        repository { nameWithOwner }
        baseRepository { nameWithOwner }
      }
    }
  }
  rateLimit { remaining resetAt }
}
"""


class GitHubAPIError(RuntimeError):
    pass


@dataclass(frozen=True)
class MergedPullRequest:
    number: int
    title: str
    merged_at: datetime
    repo_url: str  # target (base) repository, https://github.com/owner/repo


def _parse_timestamp(raw: str) -> datetime:
    return as_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))


def _to_pull_request(node: dict[str, Any]) -> Optional[MergedPullRequest]:
    merged_raw = node.get("mergedAt")
    base = node.get("baseRepository") or node.get("repository") or {}
    name = base.get("nameWithOwner") if isinstance(base, dict) else None
    if not merged_raw or not name:
        return None
    return MergedPullRequest(
        number=int(node["number"]),
        title=str(node.get("title") or ""),
        merged_at=_parse_timestamp(merged_raw),
        repo_url=f"https://github.com/{name}",
    )


class GitHubClient:
    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = "https://api.github.com",
        user_agent: str = "devsync-points/1.0",
        timeout: float = 20.0,
        page_size: int = 100,
    ) -> None:
        env_token = os.getenv("GITHUB_TOKEN")
        if not env_token:
            env_token = os.getenv("GH_TOKEN")
        if env_token:
            env_token = env_token.strip() or None
        self._token = token or env_token
        self._graphql_url = f"{base_url.rstrip('/')}/graphql"
        self._timeout = timeout
        self._page_size = max(1, min(100, page_size))
        self._headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": user_agent,
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            self._headers["Authorization"] = f"Bearer {self._token}"

        # Shared across concurrent calls; the scan reads it between batches.
        self.last_rate_limit_remaining: Optional[int] = None

    def _record_budget(self, remaining: Any) -> None:
        try:
            value = int(remaining)
        except (TypeError, ValueError):
            return
        self.last_rate_limit_remaining = value

    async def _sleep_for_rate_limit_if_needed(self, r: httpx.Response) -> None:
        remaining = r.headers.get("X-RateLimit-Remaining")
        reset = r.headers.get("X-RateLimit-Reset")
        try:
            rem_i = int(remaining) if remaining is not None else None
            reset_i = int(reset) if reset is not None else None
        except ValueError:
            rem_i, reset_i = None, None

        if rem_i is not None:
            self._record_budget(rem_i)
        if rem_i == 0 and reset_i:
            now = int(time.time())
            delay = max(0, reset_i - now) + 1
            await asyncio.sleep(delay)

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout, headers=self._headers) as client:
            r = await client.post(self._graphql_url, json=payload)
        await self._sleep_for_rate_limit_if_needed(r)

        # If 403 is rate-limit, back off until reset then retry once.
        if r.status_code == 403 and r.headers.get("X-RateLimit-Remaining") == "0":
            async with httpx.AsyncClient(timeout=self._timeout, headers=self._headers) as client:
                r = await client.post(self._graphql_url, json=payload)
        return r

    async def graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        try:
            r = await self._post({"query": query, "variables": variables})
        except httpx.HTTPError as exc:
            raise GitHubAPIError(f"GitHub API request failed: {exc}") from exc

        if r.status_code >= 400:
            raise GitHubAPIError(f"GitHub API error {r.status_code} for {self._graphql_url}: {r.text[:200]}")

        body = r.json()
        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            first = errors[0] if isinstance(errors, list) and errors else errors
            message = first.get("message") if isinstance(first, dict) else str(first)
            raise GitHubAPIError(f"GitHub GraphQL error: {message}")
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise GitHubAPIError("GitHub GraphQL response missing data")

        rate = data.get("rateLimit")
        if isinstance(rate, dict):
            self._record_budget(rate.get("remaining"))
        return data

    async def list_merged_pull_requests(self, login: str, max_pages: int = 5) -> list[MergedPullRequest]:
        """Merged PRs authored by ``login``, newest activity first. Caps pages to avoid runaway API usage."""
        out: list[MergedPullRequest] = []
        cursor: Optional[str] = None
        for _ in range(max(1, max_pages)):
            data = await self.graphql(
                MERGED_PULL_REQUESTS_QUERY,
                {"login": login, "first": self._page_size, "after": cursor},
            )
            user = data.get("user")
            if not isinstance(user, dict):
                raise GitHubAPIError(f"GitHub user not found: {login}")
            connection = user.get("pullRequests") or {}
            for node in connection.get("nodes") or []:
                if not isinstance(node, dict):
                    continue
                pr = _to_pull_request(node)
                if pr is not None:
                    out.append(pr)
            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage") or not page_info.get("endCursor"):
                break
            cursor = page_info["endCursor"]
        return out
