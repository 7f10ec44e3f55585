"""Tests for submission intake: dedup, temporal gate, boundary validation."""

from datetime import datetime, timezone

import pytest

from devsync_api.models.contribution import ContributionStatus
from devsync_api.services import intake_service, review_service
from devsync_api.services.errors import ValidationError

MERGED = datetime(2025, 6, 1, 12, tzinfo=timezone.utc)


def _submit(store, config, **overrides):
    fields = {
        "user_id": "1001",
        "user_login": "alice",
        "repo_url": "https://github.com/acme/api",
        "number": 42,
        "title": "Fix flaky login",
        "merged_at": MERGED,
    }
    fields.update(overrides)
    return intake_service.submit(store, config, **fields)


def test_submit_creates_pending_record(store, config):
    result = _submit(store, config)

    assert result.created is True
    record = result.contribution
    assert record.status == ContributionStatus.PENDING
    assert record.suggested_points == 50
    assert record.repository == "acme/api"
    assert store.get_contribution(record.id) == record


def test_suggested_points_follow_repository(store, config):
    result = _submit(store, config, repo_url="https://github.com/acme/web")
    assert result.contribution.suggested_points == 80


def test_unregistered_repository_gets_default_points(store, config):
    result = _submit(store, config, repo_url="https://github.com/other/lib")
    assert result.contribution.suggested_points == config.default_repo_points == 50


def test_duplicate_submission_is_a_noop(store, config):
    first = _submit(store, config)
    second = _submit(store, config, suggested_points=999, title="Different title")

    assert second.created is False
    assert second.contribution.id == first.contribution.id
    assert second.contribution.suggested_points == 50
    assert len(store.list_contributions()) == 1


def test_repository_url_is_canonicalised_before_dedup(store, config):
    first = _submit(store, config, repo_url="Acme/API")
    second = _submit(store, config, repo_url="https://github.com/acme/api.git/")

    assert first.contribution.repo_url == "https://github.com/acme/api"
    assert second.created is False


def test_same_number_in_another_repo_is_distinct(store, config):
    _submit(store, config)
    other = _submit(store, config, repo_url="https://github.com/acme/web")
    assert other.created is True
    assert len(store.list_contributions()) == 2


def test_merge_before_program_start_is_rejected(store, config):
    with pytest.raises(ValidationError) as exc_info:
        _submit(store, config, merged_at=datetime(2025, 3, 13, 23, 59, tzinfo=timezone.utc))

    assert "program start" in exc_info.value.detail
    assert store.list_contributions() == []


def test_merge_on_program_start_is_eligible(store, config):
    result = _submit(store, config, merged_at=datetime(2025, 3, 14, tzinfo=timezone.utc))
    assert result.created is True


@pytest.mark.parametrize(
    "overrides",
    [
        {"suggested_points": -1},
        {"number": 0},
        {"title": "   "},
        {"repo_url": "https://gitlab.com/acme/api"},
        {"user_id": ""},
    ],
)
def test_malformed_input_is_rejected_without_mutation(store, config, overrides):
    with pytest.raises(ValidationError):
        _submit(store, config, **overrides)
    assert store.list_contributions() == []


def test_deleted_rejection_is_never_requeued(store, config):
    record = _submit(store, config).contribution
    review_service.reject(store, record.id, "reviewer-1", "not a real fix")
    review_service.delete(store, record.id)

    again = _submit(store, config)

    assert again.created is False
    assert again.contribution is None
    assert store.list_contributions() == []
