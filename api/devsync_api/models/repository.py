from __future__ import annotations

from enum import Enum
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RepositoryReviewStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


def canonical_repo_url(url: str) -> str:
    """Normalize ``owner/repo``, ``github.com/owner/repo`` or full URLs to
    ``https://github.com/owner/repo`` (lower-case, no ``.git``, no trailing slash)."""
    raw = (url or "").strip()
    if not raw:
        raise ValueError("repository url is empty")
    if "://" not in raw:
        raw = raw if raw.lower().startswith("github.com/") else f"github.com/{raw}"
        raw = f"https://{raw}"
    parsed = urlparse(raw)
    host = (parsed.hostname or "").lower()
    if host not in ("github.com", "www.github.com"):
        raise ValueError(f"not a GitHub repository url: {url}")
    parts = [p for p in parsed.path.lower().split("/") if p]
    if len(parts) < 2:
        raise ValueError(f"invalid repository url: {url}")
    owner, repo = parts[0], parts[1]
    if repo.endswith(".git"):
        repo = repo[:-4]
    return f"https://github.com/{owner}/{repo}"


class AcceptedRepository(BaseModel):
    """Repository registry entry. Maintained by the external project-review flow."""

    url: str
    owner_id: str = ""
    points: int = Field(default=50, ge=0)
    review_status: RepositoryReviewStatus = RepositoryReviewStatus.ACCEPTED
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("url")
    @classmethod
    def _canonical(cls, value: str) -> str:
        return canonical_repo_url(value)
