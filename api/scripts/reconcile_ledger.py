#!/usr/bin/env python3
"""Recompute every user's points ledger from approved contributions.

Usage:
  python scripts/reconcile_ledger.py [--persist PATH] [--backup] [-v]

Exit code 1 when the post-sync validation finds approved contributions that
no ledger reflects (orphaned users or per-user failures).
"""

from __future__ import annotations

import argparse
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
from devsync_api.services import reconciliation_service


def _open_store(persist: str | None) -> ContributionStore:
    database_url = os.getenv("DATABASE_URL")
    if database_url and not persist:
        return SqlContributionStore(database_url)
    return InMemoryContributionStore(
        persist_path=persist or os.path.join(_api_dir, "logs", "contribution_store.json")
    )


def main() -> int:
    ap = argparse.ArgumentParser(description="Reconcile user ledgers from approved contributions")
    ap.add_argument("--persist", default=None, help="Path to JSON store (ignored for DATABASE_URL)")
    ap.add_argument("--backup", action="store_true", help="Snapshot current ledgers before overwriting")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    store = _open_store(args.persist)
    report = reconciliation_service.reconcile(store, create_backup=args.backup)

    if isinstance(store, InMemoryContributionStore):
        store.save()
    print(report.model_dump_json(indent=2))
    print(outcome_message(report.errors, "Ledger sync"))
    return 0 if report.validation is not None and report.validation.is_valid else 1


if __name__ == "__main__":
    sys.exit(main())
