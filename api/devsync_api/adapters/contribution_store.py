"""ContributionStore abstraction + in-memory backend.

Holds the user roster, the accepted-repository registry, review records and
ledger backups. Two operations carry the pipeline's atomicity guarantees:

- insert_contribution_if_absent: compare-and-insert on (user, repo, number)
- transition_review: compare-and-set on the record's current status
"""

from __future__ import annotations

import json
import logging
import os
import threading
from typing import Optional, Protocol

from devsync_api.models.contribution import ContributionStatus, PendingContribution, ReviewState
from devsync_api.models.reports import LedgerBackup
from devsync_api.models.repository import AcceptedRepository, RepositoryReviewStatus
from devsync_api.models.user import LedgerEntry, User

log = logging.getLogger(__name__)


class ContributionStore(Protocol):
    """Protocol for pipeline storage. Implementations: InMemoryContributionStore, SqlContributionStore."""

    # --- users ---

    def upsert_user(self, user: User) -> User:
        ...

    def get_user(self, user_id: str) -> Optional[User]:
        ...

    def list_users(self) -> list[User]:
        ...

    def set_user_ledger(self, user_id: str, ledger: LedgerEntry) -> bool:
        """Overwrite a user's ledger. Returns False when the user does not exist."""
        ...

    # --- repository registry ---

    def upsert_repository(self, repository: AcceptedRepository) -> AcceptedRepository:
        ...

    def get_repository(self, url: str) -> Optional[AcceptedRepository]:
        ...

    def list_accepted_repositories(self) -> list[AcceptedRepository]:
        ...

    # --- review records ---

    def insert_contribution_if_absent(
        self, record: PendingContribution
    ) -> tuple[Optional[PendingContribution], bool]:
        """Insert unless (user_id, repo_url, number) was ever stored.

        Returns (stored record, created). The record is None when the key belongs
        to a deleted rejected record, which must never be queued again.
        """
        ...

    def get_contribution(self, contribution_id: str) -> Optional[PendingContribution]:
        ...

    def list_contributions(
        self, status: Optional[ContributionStatus] = None, limit: int = 1000
    ) -> list[PendingContribution]:
        ...

    def transition_review(
        self, contribution_id: str, expected: ContributionStatus, review: ReviewState
    ) -> Optional[PendingContribution]:
        """Replace the review state only if the current status equals ``expected``."""
        ...

    def delete_contribution(self, contribution_id: str, expected: ContributionStatus) -> bool:
        ...

    def approved_user_ids(self) -> list[str]:
        ...

    def list_approved_for_user(self, user_id: str) -> list[PendingContribution]:
        """All approved records for one user, read in a single consistent step."""
        ...

    def count_approved(self) -> int:
        ...

    # --- ledger backups ---

    def save_ledger_backup(self, backup: LedgerBackup) -> LedgerBackup:
        ...

    def get_ledger_backup(self, backup_id: str) -> Optional[LedgerBackup]:
        ...


class InMemoryContributionStore:
    """In-memory ContributionStore. Optional JSON persistence for restart."""

    def __init__(self, persist_path: Optional[str] = None) -> None:
        self._users: dict[str, User] = {}
        self._repositories: dict[str, AcceptedRepository] = {}
        self._contributions: dict[str, PendingContribution] = {}
        self._dedup_index: dict[tuple[str, str, int], str] = {}
        self._tombstones: set[tuple[str, str, int]] = set()
        self._backups: dict[str, LedgerBackup] = {}
        self._lock = threading.RLock()
        self._persist_path = persist_path

        if persist_path and os.path.isfile(persist_path):
            self._load()

    def _load(self) -> None:
        if not self._persist_path:
            return
        try:
            with open(self._persist_path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as exc:
            log.warning("contribution_store_load_failed path=%s error=%s", self._persist_path, exc)
            return

        for u in data.get("users", []):
            user = User(**u)
            self._users[user.id] = user
        for r in data.get("repositories", []):
            repo = AcceptedRepository(**r)
            self._repositories[repo.url] = repo
        for c in data.get("contributions", []):
            record = PendingContribution(**c)
            self._contributions[record.id] = record
            self._dedup_index[record.dedup_key()] = record.id
        for t in data.get("tombstones", []):
            if isinstance(t, list) and len(t) == 3:
                self._tombstones.add((str(t[0]), str(t[1]), int(t[2])))
        for b in data.get("backups", []):
            backup = LedgerBackup(**b)
            self._backups[backup.id] = backup

    def save(self) -> None:
        """Persist to JSON if path set."""
        if not self._persist_path:
            return
        os.makedirs(os.path.dirname(self._persist_path) or ".", exist_ok=True)
        with self._lock:
            data = {
                "users": [u.model_dump(mode="json") for u in self._users.values()],
                "repositories": [r.model_dump(mode="json") for r in self._repositories.values()],
                "contributions": [c.model_dump(mode="json") for c in self._contributions.values()],
                "tombstones": [list(t) for t in sorted(self._tombstones)],
                "backups": [b.model_dump(mode="json") for b in self._backups.values()],
            }
        with open(self._persist_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=0)

    # --- users ---

    def upsert_user(self, user: User) -> User:
        with self._lock:
            existing = self._users.get(user.id)
            if existing is not None:
                # Profile fields come from the identity provider; the ledger stays ours.
                user = user.model_copy(update={"ledger": existing.ledger})
            self._users[user.id] = user
            return user.model_copy(deep=True)

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy(deep=True) if user else None

    def list_users(self) -> list[User]:
        with self._lock:
            return [u.model_copy(deep=True) for u in self._users.values()]

    def set_user_ledger(self, user_id: str, ledger: LedgerEntry) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            self._users[user_id] = user.model_copy(update={"ledger": ledger.model_copy(deep=True)})
            return True

    # --- repository registry ---

    def upsert_repository(self, repository: AcceptedRepository) -> AcceptedRepository:
        with self._lock:
            self._repositories[repository.url] = repository
            return repository

    def get_repository(self, url: str) -> Optional[AcceptedRepository]:
        with self._lock:
            return self._repositories.get(url)

    def list_accepted_repositories(self) -> list[AcceptedRepository]:
        with self._lock:
            return [
                r for r in self._repositories.values() if r.review_status == RepositoryReviewStatus.ACCEPTED
            ]

    # --- review records ---

    def insert_contribution_if_absent(
        self, record: PendingContribution
    ) -> tuple[Optional[PendingContribution], bool]:
        key = record.dedup_key()
        with self._lock:
            if key in self._tombstones:
                return None, False
            existing_id = self._dedup_index.get(key)
            if existing_id is not None:
                return self._contributions[existing_id].model_copy(deep=True), False
            self._contributions[record.id] = record
            self._dedup_index[key] = record.id
            return record.model_copy(deep=True), True

    def get_contribution(self, contribution_id: str) -> Optional[PendingContribution]:
        with self._lock:
            record = self._contributions.get(contribution_id)
            return record.model_copy(deep=True) if record else None

    def list_contributions(
        self, status: Optional[ContributionStatus] = None, limit: int = 1000
    ) -> list[PendingContribution]:
        with self._lock:
            rows = [
                c.model_copy(deep=True)
                for c in self._contributions.values()
                if status is None or c.status == status
            ]
        rows.sort(key=lambda c: (c.submitted_at, c.id), reverse=True)
        return rows[: max(1, int(limit))]

    def transition_review(
        self, contribution_id: str, expected: ContributionStatus, review: ReviewState
    ) -> Optional[PendingContribution]:
        with self._lock:
            record = self._contributions.get(contribution_id)
            if record is None or record.status != expected:
                return None
            updated = record.model_copy(update={"review": review})
            self._contributions[contribution_id] = updated
            return updated.model_copy(deep=True)

    def delete_contribution(self, contribution_id: str, expected: ContributionStatus) -> bool:
        with self._lock:
            record = self._contributions.get(contribution_id)
            if record is None or record.status != expected:
                return False
            del self._contributions[contribution_id]
            self._dedup_index.pop(record.dedup_key(), None)
            self._tombstones.add(record.dedup_key())
            return True

    def approved_user_ids(self) -> list[str]:
        with self._lock:
            ids = {c.user_id for c in self._contributions.values() if c.status == ContributionStatus.APPROVED}
        return sorted(ids)

    def list_approved_for_user(self, user_id: str) -> list[PendingContribution]:
        with self._lock:
            return [
                c.model_copy(deep=True)
                for c in self._contributions.values()
                if c.user_id == user_id and c.status == ContributionStatus.APPROVED
            ]

    def count_approved(self) -> int:
        with self._lock:
            return sum(1 for c in self._contributions.values() if c.status == ContributionStatus.APPROVED)

    # --- ledger backups ---

    def save_ledger_backup(self, backup: LedgerBackup) -> LedgerBackup:
        with self._lock:
            self._backups[backup.id] = backup.model_copy(deep=True)
            return backup

    def get_ledger_backup(self, backup_id: str) -> Optional[LedgerBackup]:
        with self._lock:
            backup = self._backups.get(backup_id)
            return backup.model_copy(deep=True) if backup else None
