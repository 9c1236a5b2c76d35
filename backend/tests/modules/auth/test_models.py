"""Tests for modules/auth/models.py."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from modules.auth.models import (
    EmailVerification,
    Session,
    Subject,
    SubjectRole,
    SubscriptionTier,
    TIER_MONTHLY_STORY_LIMITS,
)

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


class TestSubject:
    def test_defaults(self):
        subject = Subject(id="s", email="alice@example.com", created_at=NOW, updated_at=NOW)
        assert subject.email_verified is False
        assert subject.role == SubjectRole.USER
        assert subject.tier == SubscriptionTier.FREE
        assert subject.usage_count == 0
        assert subject.password_hash is None

    def test_usage_cannot_be_negative(self):
        with pytest.raises(ValidationError):
            Subject(id="s", email="a@example.com", usage_count=-1, created_at=NOW, updated_at=NOW)

    def test_public_projection_drops_secrets(self):
        subject = Subject(
            id="s",
            email="alice@example.com",
            password_hash="$2b$12$secret",
            role=SubjectRole.ADMIN,
            tier=SubscriptionTier.PRO,
            created_at=NOW,
            updated_at=NOW,
        )
        public = subject.to_public()
        assert "password_hash" not in public.model_dump()
        assert public.role == "admin"
        assert public.tier == "pro"
        assert public.is_admin is True

    def test_password_hash_hidden_from_repr(self):
        subject = Subject(id="s", email="a@example.com", password_hash="$2b$secret", created_at=NOW, updated_at=NOW)
        assert "$2b$secret" not in repr(subject)


class TestSession:
    def test_is_live_until_expiry_instant(self):
        session = Session(id="s", subject_id="u", token="s", expires_at=NOW, created_at=NOW - timedelta(days=7))
        assert session.is_live(NOW - timedelta(microseconds=1)) is True
        assert session.is_live(NOW) is False


class TestEmailVerification:
    def test_code_must_be_six_characters(self):
        with pytest.raises(ValidationError):
            EmailVerification(
                id="v", subject_id="u", email="a@example.com", code="12345", expires_at=NOW, created_at=NOW
            )


class TestTierLimits:
    def test_monthly_limits(self):
        assert TIER_MONTHLY_STORY_LIMITS[SubscriptionTier.FREE] == 5
        assert TIER_MONTHLY_STORY_LIMITS[SubscriptionTier.PREMIUM] == 50
        assert TIER_MONTHLY_STORY_LIMITS[SubscriptionTier.PRO] == 50
