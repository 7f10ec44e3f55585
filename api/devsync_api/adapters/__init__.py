"""Adapters for pipeline storage: in-memory/JSON and SQLAlchemy."""

from devsync_api.adapters.contribution_store import ContributionStore, InMemoryContributionStore
from devsync_api.adapters.sql_store import SqlContributionStore

__all__ = ["ContributionStore", "InMemoryContributionStore", "SqlContributionStore"]
