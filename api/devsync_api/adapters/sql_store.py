"""SQL-backed ContributionStore (PostgreSQL in production, SQLite in tests)."""

from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint, create_engine, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import NullPool

from devsync_api.models.contribution import (
    ApprovedReview,
    ContributionStatus,
    PendingContribution,
    PendingReview,
    RejectedReview,
    ReviewState,
)
from devsync_api.models.reports import LedgerBackup
from devsync_api.models.repository import AcceptedRepository, RepositoryReviewStatus
from devsync_api.models.user import LedgerEntry, User
from devsync_api.services.pipeline_config import as_utc


class Base(DeclarativeBase):
    pass


class UserRecord(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    login: Mapped[str] = mapped_column(String, nullable=False, index=True)
    display_name: Mapped[str | None] = mapped_column(String, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String, nullable=True)
    ledger_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")


class RepositoryRecord(Base):
    __tablename__ = "accepted_repositories"

    url: Mapped[str] = mapped_column(String, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False, default="")
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    review_status: Mapped[str] = mapped_column(String, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class ContributionRecord(Base):
    __tablename__ = "pending_contributions"
    __table_args__ = (UniqueConstraint("user_id", "repo_url", "number", name="uq_contribution_key"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    user_login: Mapped[str] = mapped_column(String, nullable=False, default="")
    repo_url: Mapped[str] = mapped_column(String, nullable=False)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    merged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    suggested_points: Mapped[int] = mapped_column(Integer, nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String, nullable=False, index=True)
    reviewed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    adjusted_points: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)


class TombstoneRecord(Base):
    __tablename__ = "deleted_contribution_keys"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    repo_url: Mapped[str] = mapped_column(String, primary_key=True)
    number: Mapped[int] = mapped_column(Integer, primary_key=True)


class LedgerBackupRecord(Base):
    __tablename__ = "ledger_backups"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ledgers_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")


def _create_engine(url: str):
    kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        kwargs["poolclass"] = NullPool
    return create_engine(url, **kwargs)


def _review_columns(review: ReviewState) -> dict[str, Any]:
    values: dict[str, Any] = {
        "status": review.status,
        "reviewed_by": None,
        "reviewed_at": None,
        "adjusted_points": None,
        "rejection_reason": None,
    }
    if isinstance(review, ApprovedReview):
        values.update(
            reviewed_by=review.reviewed_by,
            reviewed_at=review.reviewed_at,
            adjusted_points=review.adjusted_points,
        )
    elif isinstance(review, RejectedReview):
        values.update(
            reviewed_by=review.reviewed_by,
            reviewed_at=review.reviewed_at,
            rejection_reason=review.reason,
        )
    return values


def _to_review(row: ContributionRecord) -> ReviewState:
    stamp: dict[str, Any] = {"reviewed_by": row.reviewed_by or ""}
    if row.reviewed_at is not None:
        stamp["reviewed_at"] = as_utc(row.reviewed_at)
    if row.status == ContributionStatus.APPROVED.value:
        return ApprovedReview(adjusted_points=row.adjusted_points, **stamp)
    if row.status == ContributionStatus.REJECTED.value:
        return RejectedReview(reason=row.rejection_reason, **stamp)
    return PendingReview()


def _to_contribution(row: ContributionRecord) -> PendingContribution:
    return PendingContribution(
        id=row.id,
        user_id=row.user_id,
        user_login=row.user_login,
        repo_url=row.repo_url,
        number=row.number,
        title=row.title,
        merged_at=as_utc(row.merged_at),
        suggested_points=row.suggested_points,
        submitted_at=as_utc(row.submitted_at),
        review=_to_review(row),
    )


def _load_ledger(raw: str) -> LedgerEntry:
    try:
        data = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return LedgerEntry()
    return LedgerEntry(**data) if isinstance(data, dict) and data else LedgerEntry()


def _to_user(row: UserRecord) -> User:
    return User(
        id=row.id,
        login=row.login,
        display_name=row.display_name,
        avatar_url=row.avatar_url,
        ledger=_load_ledger(row.ledger_json),
    )


def _to_repository(row: RepositoryRecord) -> AcceptedRepository:
    return AcceptedRepository(
        url=row.url,
        owner_id=row.owner_id,
        points=row.points,
        review_status=row.review_status,
        description=row.description,
    )


class SqlContributionStore:
    """SQLAlchemy ContributionStore.

    Uniqueness of (user, repo, number) is enforced by a table constraint, and
    review transitions are conditional UPDATEs on the current status, so
    concurrent writers converge instead of overwriting each other.
    """

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("database_url is required for SqlContributionStore")
        self.engine = _create_engine(database_url)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False)
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def _session(self):
        session: Session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # --- users ---

    def upsert_user(self, user: User) -> User:
        with self._session() as session:
            row = session.get(UserRecord, user.id)
            if row is None:
                row = UserRecord(id=user.id, ledger_json=user.ledger.model_dump_json())
                session.add(row)
            row.login = user.login
            row.display_name = user.display_name
            row.avatar_url = user.avatar_url
            session.flush()
            return _to_user(row)

    def get_user(self, user_id: str) -> Optional[User]:
        with self._session() as session:
            row = session.get(UserRecord, user_id)
            return _to_user(row) if row else None

    def list_users(self) -> list[User]:
        with self._session() as session:
            rows = session.scalars(select(UserRecord).order_by(UserRecord.id)).all()
            return [_to_user(r) for r in rows]

    def set_user_ledger(self, user_id: str, ledger: LedgerEntry) -> bool:
        with self._session() as session:
            result = session.execute(
                update(UserRecord).where(UserRecord.id == user_id).values(ledger_json=ledger.model_dump_json())
            )
            return result.rowcount == 1

    # --- repository registry ---

    def upsert_repository(self, repository: AcceptedRepository) -> AcceptedRepository:
        with self._session() as session:
            row = session.get(RepositoryRecord, repository.url)
            if row is None:
                row = RepositoryRecord(url=repository.url)
                session.add(row)
            row.owner_id = repository.owner_id
            row.points = repository.points
            row.review_status = repository.review_status.value
            row.description = repository.description
            return repository

    def get_repository(self, url: str) -> Optional[AcceptedRepository]:
        with self._session() as session:
            row = session.get(RepositoryRecord, url)
            return _to_repository(row) if row else None

    def list_accepted_repositories(self) -> list[AcceptedRepository]:
        with self._session() as session:
            rows = session.scalars(
                select(RepositoryRecord).where(
                    RepositoryRecord.review_status == RepositoryReviewStatus.ACCEPTED.value
                )
            ).all()
            return [_to_repository(r) for r in rows]

    # --- review records ---

    def _find_by_key(self, session: Session, user_id: str, repo_url: str, number: int) -> ContributionRecord | None:
        return session.scalars(
            select(ContributionRecord).where(
                ContributionRecord.user_id == user_id,
                ContributionRecord.repo_url == repo_url,
                ContributionRecord.number == number,
            )
        ).first()

    def insert_contribution_if_absent(
        self, record: PendingContribution
    ) -> tuple[Optional[PendingContribution], bool]:
        user_id, repo_url, number = record.dedup_key()
        with self._session() as session:
            if session.get(TombstoneRecord, (user_id, repo_url, number)) is not None:
                return None, False
            existing = self._find_by_key(session, user_id, repo_url, number)
            if existing is not None:
                return _to_contribution(existing), False

        try:
            with self._session() as session:
                session.add(
                    ContributionRecord(
                        id=record.id,
                        user_id=user_id,
                        user_login=record.user_login,
                        repo_url=repo_url,
                        number=number,
                        title=record.title,
                        merged_at=record.merged_at,
                        suggested_points=record.suggested_points,
                        submitted_at=record.submitted_at,
                        **_review_columns(record.review),
                    )
                )
        except IntegrityError:
            # Lost the race to a concurrent insert of the same key.
            with self._session() as session:
                existing = self._find_by_key(session, user_id, repo_url, number)
                return (_to_contribution(existing) if existing else None), False
        return record, True

    def get_contribution(self, contribution_id: str) -> Optional[PendingContribution]:
        with self._session() as session:
            row = session.get(ContributionRecord, contribution_id)
            return _to_contribution(row) if row else None

    def list_contributions(
        self, status: Optional[ContributionStatus] = None, limit: int = 1000
    ) -> list[PendingContribution]:
        query = select(ContributionRecord)
        if status is not None:
            query = query.where(ContributionRecord.status == status.value)
        query = query.order_by(ContributionRecord.submitted_at.desc(), ContributionRecord.id.desc()).limit(
            max(1, int(limit))
        )
        with self._session() as session:
            return [_to_contribution(r) for r in session.scalars(query).all()]

    def transition_review(
        self, contribution_id: str, expected: ContributionStatus, review: ReviewState
    ) -> Optional[PendingContribution]:
        with self._session() as session:
            result = session.execute(
                update(ContributionRecord)
                .where(ContributionRecord.id == contribution_id, ContributionRecord.status == expected.value)
                .values(**_review_columns(review))
            )
            if result.rowcount != 1:
                return None
            row = session.get(ContributionRecord, contribution_id, populate_existing=True)
            return _to_contribution(row) if row else None

    def delete_contribution(self, contribution_id: str, expected: ContributionStatus) -> bool:
        with self._session() as session:
            row = session.get(ContributionRecord, contribution_id)
            if row is None or row.status != expected.value:
                return False
            session.delete(row)
            if session.get(TombstoneRecord, (row.user_id, row.repo_url, row.number)) is None:
                session.add(TombstoneRecord(user_id=row.user_id, repo_url=row.repo_url, number=row.number))
            return True

    def approved_user_ids(self) -> list[str]:
        with self._session() as session:
            rows = session.scalars(
                select(ContributionRecord.user_id)
                .where(ContributionRecord.status == ContributionStatus.APPROVED.value)
                .distinct()
            ).all()
            return sorted(rows)

    def list_approved_for_user(self, user_id: str) -> list[PendingContribution]:
        with self._session() as session:
            rows = session.scalars(
                select(ContributionRecord).where(
                    ContributionRecord.user_id == user_id,
                    ContributionRecord.status == ContributionStatus.APPROVED.value,
                )
            ).all()
            return [_to_contribution(r) for r in rows]

    def count_approved(self) -> int:
        with self._session() as session:
            return int(
                session.scalar(
                    select(func.count())
                    .select_from(ContributionRecord)
                    .where(ContributionRecord.status == ContributionStatus.APPROVED.value)
                )
                or 0
            )

    # --- ledger backups ---

    def save_ledger_backup(self, backup: LedgerBackup) -> LedgerBackup:
        with self._session() as session:
            session.add(
                LedgerBackupRecord(
                    id=backup.id,
                    created_at=backup.created_at,
                    ledgers_json=json.dumps(
                        {uid: ledger.model_dump(mode="json") for uid, ledger in backup.ledgers.items()}
                    ),
                )
            )
            return backup

    def get_ledger_backup(self, backup_id: str) -> Optional[LedgerBackup]:
        with self._session() as session:
            row = session.get(LedgerBackupRecord, backup_id)
            if row is None:
                return None
            ledgers = json.loads(row.ledgers_json or "{}")
            return LedgerBackup(
                id=row.id,
                created_at=as_utc(row.created_at),
                ledgers={uid: LedgerEntry(**data) for uid, data in ledgers.items()},
            )
