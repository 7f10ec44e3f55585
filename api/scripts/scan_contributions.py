#!/usr/bin/env python3
"""Scan every known user's merged GitHub PRs into the review queue.

Usage:
  python scripts/scan_contributions.py [--persist PATH] [--batch-size N] [--delay SECONDS] [--user ID] [-v]

Notes:
- Uses DATABASE_URL when set, else the JSON store at --persist (default: api/logs/contribution_store.json)
- Only PRs merged on/after PROGRAM_START_DATE into accepted repositories are queued
- Safe to re-run: already queued PRs are skipped
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

_api_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _api_dir)
load_dotenv(os.path.join(_api_dir, ".env"))

from devsync_api.adapters.contribution_store import ContributionStore, InMemoryContributionStore
from devsync_api.adapters.sql_store import SqlContributionStore
from devsync_api.models.reports import outcome_message
from devsync_api.services.github_client import GitHubClient
from devsync_api.services.pipeline_config import PipelineConfig
from devsync_api.services.scan_orchestrator import ScanOrchestrator

log = logging.getLogger(__name__)


def _open_store(persist: str | None) -> ContributionStore:
    database_url = os.getenv("DATABASE_URL")
    if database_url and not persist:
        return SqlContributionStore(database_url)
    return InMemoryContributionStore(
        persist_path=persist or os.path.join(_api_dir, "logs", "contribution_store.json")
    )


def main() -> int:
    ap = argparse.ArgumentParser(description="Scan merged GitHub PRs into the review queue")
    ap.add_argument("--persist", default=None, help="Path to JSON store (ignored for DATABASE_URL)")
    ap.add_argument("--batch-size", type=int, default=None, help="Users per batch (default SCAN_BATCH_SIZE or 5)")
    ap.add_argument("--delay", type=float, default=None, help="Seconds between batches (default 2)")
    ap.add_argument("--user", default=None, help="Only scan this user id")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    config = PipelineConfig.from_env().with_overrides(batch_size=args.batch_size, inter_batch_delay=args.delay)
    store = _open_store(args.persist)
    users = store.list_users()
    if args.user:
        users = [u for u in users if u.id == args.user]
        if not users:
            log.error("scan_user_not_found user_id=%s", args.user)
            return 1

    orchestrator = ScanOrchestrator(store, GitHubClient(), config)
    report = asyncio.run(orchestrator.scan(users))

    if isinstance(store, InMemoryContributionStore):
        store.save()
    print(report.model_dump_json(indent=2))
    print(outcome_message(report.errors, "PR scan"))
    return 0


if __name__ == "__main__":
    sys.exit(main())
