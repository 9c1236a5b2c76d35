"""Tests for modules/auth/service.py: password flows, verification, profiles."""

import asyncio
import threading
from datetime import timedelta
from unittest.mock import patch
from urllib.parse import parse_qs, urlsplit

import pytest

from modules.auth.exceptions import (
    EmailAlreadyExistsError,
    InvalidCredentialsError,
    MissingCredentialsError,
    SessionInvalidError,
    SubjectNotFoundError,
    WeakPasswordError,
)
from modules.auth.interfaces import IAuthService
from modules.auth.models import OAuthProfile, OAuthProvider, SubscriptionTier
from modules.auth.service import (
    EXPIRED_CODE_MESSAGE,
    INVALID_CODE_MESSAGE,
    VERIFIED_MESSAGE,
    check_password_policy,
    generate_verification_code,
)
from shared.exceptions import ValidationError


class TestRegister:
    def test_satisfies_protocol(self, auth_service):
        assert isinstance(auth_service, IAuthService)

    @pytest.mark.asyncio
    async def test_alice_can_authenticate_before_verifying(self, auth_service, sessions):
        result = await auth_service.register("alice@example.com", "Secr3t!")

        assert result.requires_email_verification is True
        assert result.user.email_verified is False
        user = await sessions.resolve_session(result.token)
        assert user.id == result.user.id
        assert user.email_verified is False

    @pytest.mark.asyncio
    async def test_new_subject_defaults(self, auth_service, store):
        result = await auth_service.register(" Alice@Example.COM ", "Secr3t!", "Alice", "Liddell")

        subject = store.get_subject(result.user.id)
        assert subject.email == "alice@example.com"
        assert subject.first_name == "Alice"
        assert subject.last_name == "Liddell"
        assert subject.tier.value == "free"
        assert subject.usage_count == 0
        assert subject.password_hash and subject.password_hash != "Secr3t!"

    @pytest.mark.asyncio
    async def test_sends_verification_code(self, auth_service, sink, store):
        result = await auth_service.register("alice@example.com", "Secr3t!", first_name="Alice")
        await auth_service.drain_notifications()

        assert len(sink.verification_emails) == 1
        sent = sink.verification_emails[0]
        assert sent["email"] == "alice@example.com"
        assert sent["first_name"] == "Alice"
        assert sent["url"] == (
            f"https://app.example.com/auth/verify-email?code={sent['code']}&email=alice%40example.com"
        )
        assert store.has_unverified_verification(result.user.id)

    @pytest.mark.asyncio
    async def test_duplicate_email_is_case_insensitive(self, auth_service):
        await auth_service.register("alice@example.com", "Secr3t!")
        with pytest.raises(EmailAlreadyExistsError) as exc_info:
            await auth_service.register("ALICE@example.com", "0ther-pass")
        assert exc_info.value.message == "User with this email already exists"

    @pytest.mark.asyncio
    async def test_concurrent_registration_has_one_winner(self, auth_service):
        results = await asyncio.gather(
            auth_service.register("alice@example.com", "Secr3t!"),
            auth_service.register("Alice@example.com", "Secr3t!"),
            return_exceptions=True,
        )
        successes = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, EmailAlreadyExistsError)]
        assert len(successes) == 1
        assert len(conflicts) == 1

    @pytest.mark.asyncio
    async def test_missing_credentials(self, auth_service):
        with pytest.raises(MissingCredentialsError) as exc_info:
            await auth_service.register("", "Secr3t!")
        assert exc_info.value.message == "Email and password are required"
        with pytest.raises(MissingCredentialsError):
            await auth_service.register("alice@example.com", "")

    @pytest.mark.asyncio
    async def test_malformed_email(self, auth_service):
        with pytest.raises(ValidationError) as exc_info:
            await auth_service.register("not-an-email", "Secr3t!")
        assert exc_info.value.code == "INVALID_EMAIL"

    @pytest.mark.asyncio
    async def test_weak_password(self, auth_service, store):
        with pytest.raises(WeakPasswordError):
            await auth_service.register("alice@example.com", "abc")
        assert store.get_subject_by_email("alice@example.com") is None

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_registration(self, auth_service, sink, sessions):
        sink.fail = True
        result = await auth_service.register("alice@example.com", "Secr3t!")
        await auth_service.drain_notifications()
        assert (await sessions.resolve_session(result.token)).id == result.user.id

    @pytest.mark.asyncio
    async def test_notification_exception_is_swallowed(self, auth_service, sink):
        sink.raise_error = RuntimeError("smtp down")
        result = await auth_service.register("alice@example.com", "Secr3t!")
        await auth_service.drain_notifications()
        assert result.token


class TestPasswordPolicy:
    def test_accepts_reasonable_password(self):
        check_password_policy("Secr3t!")

    @pytest.mark.parametrize("password", ["", "12345", "      ", "x" * 73])
    def test_rejects(self, password):
        with pytest.raises(WeakPasswordError):
            check_password_policy(password)


class TestLogin:
    @pytest.mark.asyncio
    async def test_register_then_login(self, auth_service, sessions):
        registered = await auth_service.register("alice@example.com", "Secr3t!")
        result = await auth_service.login("Alice@Example.com", "Secr3t!")

        assert result.user.id == registered.user.id
        assert result.token != registered.token
        assert (await sessions.resolve_session(result.token)).id == registered.user.id

    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_email_are_indistinguishable(self, auth_service):
        await auth_service.register("alice@example.com", "Secr3t!")

        with pytest.raises(InvalidCredentialsError) as wrong_password:
            await auth_service.login("alice@example.com", "wrong-password")
        with pytest.raises(InvalidCredentialsError) as unknown_email:
            await auth_service.login("nobody@example.com", "Secr3t!")

        assert wrong_password.value.to_dict() == unknown_email.value.to_dict()
        assert wrong_password.value.message == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_oauth_only_subject_cannot_password_login(self, auth_service):
        await auth_service.find_or_create_oauth_subject(
            OAuthProvider.GOOGLE, "g-1", "bob@example.com", OAuthProfile()
        )
        with pytest.raises(InvalidCredentialsError):
            await auth_service.login("bob@example.com", "anything")

    @pytest.mark.asyncio
    async def test_missing_credentials(self, auth_service):
        with pytest.raises(MissingCredentialsError):
            await auth_service.login("alice@example.com", "")


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_revokes_session(self, auth_service, sessions):
        result = await auth_service.register("alice@example.com", "Secr3t!")
        await auth_service.logout(result.token)
        with pytest.raises(SessionInvalidError):
            await sessions.resolve_session(result.token)

    @pytest.mark.asyncio
    async def test_logout_leaves_other_sessions(self, auth_service, sessions):
        first = await auth_service.register("alice@example.com", "Secr3t!")
        second = await auth_service.login("alice@example.com", "Secr3t!")
        await auth_service.logout(first.token)
        assert (await sessions.resolve_session(second.token)).id == first.user.id

    @pytest.mark.asyncio
    async def test_logout_always_succeeds(self, auth_service):
        result = await auth_service.register("alice@example.com", "Secr3t!")
        await auth_service.logout(result.token)
        await auth_service.logout(result.token)
        await auth_service.logout("garbage")
        await auth_service.logout("")


class TestEmailVerification:
    def test_generated_codes_are_six_digits(self):
        for _ in range(50):
            code = generate_verification_code()
            assert len(code) == 6 and code.isdigit()

    @pytest.mark.asyncio
    async def test_verify_with_issued_code(self, auth_service, sink, store):
        result = await auth_service.register("alice@example.com", "Secr3t!")
        await auth_service.drain_notifications()

        outcome = await auth_service.verify_email("alice@example.com", sink.last_code)
        assert outcome.success is True
        assert outcome.message == VERIFIED_MESSAGE
        assert store.get_subject(result.user.id).email_verified is True

    @pytest.mark.asyncio
    async def test_verification_sends_welcome(self, auth_service, sink):
        await auth_service.register("alice@example.com", "Secr3t!", first_name="Alice")
        await auth_service.drain_notifications()
        await auth_service.verify_email("alice@example.com", sink.last_code)
        await auth_service.drain_notifications()
        assert sink.welcome_emails == [{"email": "alice@example.com", "first_name": "Alice"}]

    @pytest.mark.asyncio
    async def test_wrong_code_and_wrong_email_share_message(self, auth_service, sink):
        await auth_service.register("alice@example.com", "Secr3t!")
        await auth_service.drain_notifications()
        code = sink.last_code
        wrong_code = "000000" if code != "000000" else "111111"

        bad_code = await auth_service.verify_email("alice@example.com", wrong_code)
        bad_email = await auth_service.verify_email("bob@example.com", code)

        assert bad_code.success is False and bad_email.success is False
        assert bad_code.message == bad_email.message == INVALID_CODE_MESSAGE

    @pytest.mark.asyncio
    async def test_expired_code(self, auth_service, sink, clock, store):
        result = await auth_service.register("alice@example.com", "Secr3t!")
        await auth_service.drain_notifications()

        clock.advance(minutes=15, seconds=1)
        outcome = await auth_service.verify_email("alice@example.com", sink.last_code)
        assert outcome.success is False
        assert outcome.message == EXPIRED_CODE_MESSAGE
        assert store.get_subject(result.user.id).email_verified is False

    @pytest.mark.asyncio
    async def test_code_valid_just_before_expiry(self, auth_service, sink, clock):
        await auth_service.register("alice@example.com", "Secr3t!")
        await auth_service.drain_notifications()
        clock.advance(minutes=15, seconds=-1)
        assert (await auth_service.verify_email("alice@example.com", sink.last_code)).success

    @pytest.mark.asyncio
    async def test_code_valid_at_exact_expiry(self, auth_service, sink, clock):
        await auth_service.register("alice@example.com", "Secr3t!")
        await auth_service.drain_notifications()
        clock.advance(minutes=15)
        assert (await auth_service.verify_email("alice@example.com", sink.last_code)).success

    @pytest.mark.asyncio
    async def test_link_round_trips_plus_address(self, auth_service, sink):
        await auth_service.register("alice+kids@example.com", "Secr3t!")
        await auth_service.drain_notifications()

        query = parse_qs(urlsplit(sink.verification_emails[-1]["url"]).query)
        assert query["email"] == ["alice+kids@example.com"]

        outcome = await auth_service.verify_email(query["email"][0], query["code"][0])
        assert outcome.success is True

    @pytest.mark.asyncio
    async def test_code_cannot_be_reused(self, auth_service, sink):
        await auth_service.register("alice@example.com", "Secr3t!")
        await auth_service.drain_notifications()
        code = sink.last_code
        assert (await auth_service.verify_email("alice@example.com", code)).success
        assert not (await auth_service.verify_email("alice@example.com", code)).success

    @pytest.mark.asyncio
    async def test_resend_invalidates_previous_code(self, auth_service, sink):
        with patch(
            "modules.auth.service.generate_verification_code",
            side_effect=["123456", "654321"],
        ):
            await auth_service.register("alice@example.com", "Secr3t!")
            await auth_service.drain_notifications()
            assert await auth_service.resend_verification_email("alice@example.com") is True

        old = await auth_service.verify_email("alice@example.com", "123456")
        assert old.success is False
        new = await auth_service.verify_email("alice@example.com", "654321")
        assert new.success is True

    @pytest.mark.asyncio
    async def test_resend_for_verified_subject_is_noop(self, auth_service, sink, store):
        result = await auth_service.register("alice@example.com", "Secr3t!")
        await auth_service.drain_notifications()
        await auth_service.verify_email("alice@example.com", sink.last_code)
        sent_before = len(sink.verification_emails)

        assert await auth_service.resend_verification_email("alice@example.com") is True
        assert len(sink.verification_emails) == sent_before
        assert store.has_unverified_verification(result.user.id) is False

    @pytest.mark.asyncio
    async def test_resend_for_unknown_email(self, auth_service, sink):
        assert await auth_service.resend_verification_email("nobody@example.com") is False
        assert sink.verification_emails == []

    @pytest.mark.asyncio
    async def test_send_reports_delivery_failure(self, auth_service, sink, store):
        result = await auth_service.register("alice@example.com", "Secr3t!")
        await auth_service.drain_notifications()

        sink.fail = True
        assert await auth_service.send_verification_email(result.user.id, "alice@example.com") is False
        # The code is stored even though delivery failed.
        assert store.has_unverified_verification(result.user.id)

    @pytest.mark.asyncio
    async def test_send_survives_sink_exception(self, auth_service, sink):
        result = await auth_service.register("alice@example.com", "Secr3t!")
        await auth_service.drain_notifications()
        sink.raise_error = RuntimeError("boom")
        assert await auth_service.send_verification_email(result.user.id, "alice@example.com") is False

    @pytest.mark.asyncio
    async def test_verification_status(self, auth_service, sink):
        result = await auth_service.register("alice@example.com", "Secr3t!")
        await auth_service.drain_notifications()

        status = await auth_service.get_verification_status(result.user.id)
        assert status.email_verified is False
        assert status.has_unverified_code is True

        await auth_service.verify_email("alice@example.com", sink.last_code)
        status = await auth_service.get_verification_status(result.user.id)
        assert status.email_verified is True
        assert status.has_unverified_code is False

    @pytest.mark.asyncio
    async def test_verification_status_unknown_subject(self, auth_service):
        with pytest.raises(SubjectNotFoundError):
            await auth_service.get_verification_status("missing")


class TestProfiles:
    @pytest.mark.asyncio
    async def test_update_profile_changes_only_given_fields(self, auth_service):
        result = await auth_service.register("alice@example.com", "Secr3t!", "Alice", "Liddell")
        updated = await auth_service.update_profile(result.user.id, last_name="Hargreaves")
        assert updated.first_name == "Alice"
        assert updated.last_name == "Hargreaves"

    @pytest.mark.asyncio
    async def test_update_profile_without_changes(self, auth_service):
        result = await auth_service.register("alice@example.com", "Secr3t!", "Alice")
        assert (await auth_service.update_profile(result.user.id)).first_name == "Alice"

    @pytest.mark.asyncio
    async def test_increment_usage(self, auth_service):
        result = await auth_service.register("alice@example.com", "Secr3t!")
        await auth_service.increment_usage(result.user.id)
        assert (await auth_service.increment_usage(result.user.id)).usage_count == 2

    @pytest.mark.asyncio
    async def test_missing_subject(self, auth_service):
        with pytest.raises(SubjectNotFoundError):
            await auth_service.get_subject("missing")
        with pytest.raises(SubjectNotFoundError):
            await auth_service.update_profile("missing", first_name="X")
        with pytest.raises(SubjectNotFoundError):
            await auth_service.increment_usage("missing")

    @pytest.mark.asyncio
    async def test_session_ttl_matches_manager(self, auth_service, sessions, clock):
        result = await auth_service.register("alice@example.com", "Secr3t!")
        assert result.expires_at == clock() + sessions.ttl
        assert sessions.ttl == timedelta(days=7)


class TestInlineNotifications:
    @pytest.mark.asyncio
    async def test_inline_delivery_completes_before_return(self, store, sessions, hasher, sink):
        from modules.auth.service import AuthService

        service = AuthService(store, sessions, hasher, sink, notify_in_background=False)
        await service.register("alice@example.com", "Secr3t!")
        assert len(sink.verification_emails) == 1

    @pytest.mark.asyncio
    async def test_inline_delivery_failure_still_swallowed(self, store, sessions, hasher, sink):
        from modules.auth.service import AuthService

        sink.raise_error = RuntimeError("smtp down")
        service = AuthService(store, sessions, hasher, sink, notify_in_background=False)
        result = await service.register("alice@example.com", "Secr3t!")
        assert result.token


class TestUsageLimits:
    @pytest.mark.asyncio
    async def test_fresh_subject_is_under_limit(self, auth_service):
        result = await auth_service.register("alice@example.com", "Secr3t!")
        stats = await auth_service.get_usage_stats(result.user.id)

        assert stats.tier == SubscriptionTier.FREE
        assert stats.monthly_story_limit == 5
        assert stats.usage_count == 0
        assert stats.has_reached_limit is False
        assert stats.member_since == result.user.created_at
        assert await auth_service.has_reached_usage_limit(result.user.id) is False

    @pytest.mark.asyncio
    async def test_limit_reached_at_tier_allowance(self, auth_service):
        subject_id = (await auth_service.register("alice@example.com", "Secr3t!")).user.id
        for _ in range(4):
            await auth_service.increment_usage(subject_id)
        assert await auth_service.has_reached_usage_limit(subject_id) is False

        await auth_service.increment_usage(subject_id)
        assert await auth_service.has_reached_usage_limit(subject_id) is True

    @pytest.mark.asyncio
    async def test_premium_tier_has_larger_allowance(self, auth_service, store):
        subject_id = (await auth_service.register("alice@example.com", "Secr3t!")).user.id
        store.update_subject(subject_id, {"tier": SubscriptionTier.PREMIUM})
        for _ in range(5):
            await auth_service.increment_usage(subject_id)

        stats = await auth_service.get_usage_stats(subject_id)
        assert stats.monthly_story_limit == 50
        assert stats.has_reached_limit is False

    @pytest.mark.asyncio
    async def test_unknown_subject(self, auth_service):
        with pytest.raises(SubjectNotFoundError):
            await auth_service.has_reached_usage_limit("missing")


class TestDummyHash:
    @pytest.mark.asyncio
    async def test_unknown_email_hashes_off_the_event_loop(self, store, sessions, hasher, sink):
        from modules.auth.service import AuthService

        hashing_threads = []
        original_hash = hasher.hash

        def recording_hash(password):
            hashing_threads.append(threading.get_ident())
            return original_hash(password)

        service = AuthService(store, sessions, hasher, sink)
        with patch.object(hasher, "hash", side_effect=recording_hash):
            with pytest.raises(InvalidCredentialsError):
                await service.login("nobody@example.com", "Secr3t!")
            with pytest.raises(InvalidCredentialsError):
                await service.login("nobody@example.com", "Secr3t!")

        assert len(hashing_threads) == 1
        assert hashing_threads[0] != threading.get_ident()
