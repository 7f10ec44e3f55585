"""Ledger reconciliation: recompute every affected user's ledger from approved records.

Each run overwrites ledgers with a full recomputation, never an increment, so
running it twice over the same approved set leaves identical ledgers.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional
from uuid import uuid4

from devsync_api.adapters.contribution_store import ContributionStore
from devsync_api.models.contribution import utc_now
from devsync_api.models.reports import LedgerBackup, SyncError, SyncReport, SyncValidation
from devsync_api.services.scoring_engine import compute_ledger

log = logging.getLogger(__name__)


def _backup_ledgers(store: ContributionStore, user_ids: list[str]) -> LedgerBackup:
    ledgers = {}
    for uid in user_ids:
        user = store.get_user(uid)
        if user is not None:
            ledgers[uid] = user.ledger
    backup = store.save_ledger_backup(LedgerBackup(id=str(uuid4()), ledgers=ledgers))
    log.info("ledger_backup_created backup_id=%s users=%d", backup.id, len(ledgers))
    return backup


def validate(store: ContributionStore, orphaned_user_ids: Optional[list[str]] = None) -> SyncValidation:
    """Compare approved records in storage with contributions counted in ledgers. Reports only."""
    users = store.list_users()
    known = {u.id for u in users}
    if orphaned_user_ids is None:
        orphaned_user_ids = [uid for uid in store.approved_user_ids() if uid not in known]
    approved_in_store = store.count_approved()
    reflected = sum(len(u.ledger.contributions) for u in users)
    return SyncValidation(
        approved_in_store=approved_in_store,
        reflected_in_ledgers=reflected,
        orphaned_user_ids=sorted(orphaned_user_ids),
        users_with_points=sum(1 for u in users if u.ledger.total_points > 0),
        is_valid=approved_in_store == reflected and not orphaned_user_ids,
    )


def reconcile(
    store: ContributionStore,
    create_backup: bool = False,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> SyncReport:
    """Rewrite the ledger of every user holding at least one approved contribution.

    Per-user problems (unknown user id, malformed record) are collected in the
    report and never abort the run. Cancellation is honoured between users only.
    """
    started = time.perf_counter()
    report = SyncReport()
    user_ids = store.approved_user_ids()
    log.info("ledger_sync_started users=%d create_backup=%s", len(user_ids), create_backup)

    if create_backup:
        report.backup_id = _backup_ledgers(store, user_ids).id

    orphaned: list[str] = []
    for uid in user_ids:
        if should_cancel is not None and should_cancel():
            report.cancelled = True
            log.warning(
                "ledger_sync_cancelled processed=%d remaining=%d",
                report.users_processed,
                len(user_ids) - report.users_processed,
            )
            break

        user = store.get_user(uid)
        if user is None:
            orphaned.append(uid)
            report.errors.append(SyncError(user_id=uid, error="User not found for approved contributions"))
            log.warning("ledger_sync_orphan user_id=%s", uid)
            continue

        approved = store.list_approved_for_user(uid)
        try:
            ledger = compute_ledger(approved)
        except ValueError as exc:
            report.errors.append(SyncError(user_id=uid, error=str(exc)))
            log.warning("ledger_sync_user_failed user_id=%s error=%s", uid, exc)
            continue

        if ledger != user.ledger:
            report.users_changed.append(uid)
        store.set_user_ledger(uid, ledger)
        report.users_processed += 1
        report.approved_contributions += len(approved)

    report.validation = validate(store, orphaned)
    report.finished_at = utc_now()
    report.elapsed_seconds = round(time.perf_counter() - started, 3)
    log.info(
        "ledger_sync_completed users_processed=%d users_changed=%d approved=%d errors=%d valid=%s elapsed_s=%.3f",
        report.users_processed,
        len(report.users_changed),
        report.approved_contributions,
        len(report.errors),
        report.validation.is_valid,
        report.elapsed_seconds,
    )
    if not report.validation.is_valid:
        log.warning(
            "ledger_sync_validation_mismatch approved_in_store=%d reflected_in_ledgers=%d orphans=%d",
            report.validation.approved_in_store,
            report.validation.reflected_in_ledgers,
            len(report.validation.orphaned_user_ids),
        )
    return report
