"""Admin gate for review and sync endpoints."""

from __future__ import annotations

import hmac
import os

from fastapi import Header

from devsync_api.services.errors import AdminAuthError

DEFAULT_REVIEWER = "admin"


def _admin_ids() -> set[str]:
    raw = os.getenv("ADMIN_GITHUB_IDS", "")
    return {part.strip() for part in raw.split(",") if part.strip()}


def require_admin(x_admin_key: str = Header(None), x_admin_user: str = Header(None)) -> str:
    """Check X-Admin-Key against ADMIN_API_KEY and return the reviewer identity.

    When ADMIN_GITHUB_IDS is set, X-Admin-User must be one of them.
    """
    admin_key = (os.getenv("ADMIN_API_KEY") or "").strip()
    if not admin_key or not x_admin_key:
        raise AdminAuthError("Admin access required")
    # Header values arrive latin-1 decoded; compare_digest only takes ASCII str.
    if not hmac.compare_digest(x_admin_key.encode("utf-8"), admin_key.encode("utf-8")):
        raise AdminAuthError("Admin access required")

    reviewer = (x_admin_user or "").strip()
    allowed = _admin_ids()
    if allowed:
        if reviewer not in allowed:
            raise AdminAuthError("Admin access required")
        return reviewer
    return reviewer or DEFAULT_REVIEWER
