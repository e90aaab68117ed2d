"""
Unit tests for VerificationSessionManager.

Drives the session state machine end to end against in-memory fakes:
start, email collection, code issuance, code submission, role grant,
expiry and teardown.
"""

import asyncio
from datetime import timedelta

import pytest

from emailgate.core.exceptions import ExternalServiceError
from emailgate.modules.shared.exceptions import (
    AlreadyVerified,
    DomainNotAllowed,
    EmailDeliveryFailed,
    InsufficientPermissions,
    ResponseTimeout,
    SessionAlreadyActive,
)
from emailgate.modules.shared.registry import GENERIC_ERROR, GENERIC_VERIFICATION_FAILURE
from emailgate.modules.verification import messages
from emailgate.modules.verification.manager import VerificationSessionManager
from emailgate.modules.verification.platform import BotCapabilities, RoleInfo
from emailgate.modules.verification.session import SessionPhase, utcnow
from emailgate.modules.verification.settings import VerificationSettings
from tests.conftest import GUILD_ID, USER_ID, wait_until

EMAIL_TIMEOUT_TEXT = "⏰ You took too long to respond. Please use `.verify` again."
OTP_TIMEOUT_TEXT = "⏰ Verification timed out. Please use `.verify` again."


async def issue_code(manager, platform, user_id=USER_ID, guild_id=GUILD_ID, email="alice@uni.edu"):
    """Run `.verify` and answer the email prompt."""
    task = asyncio.create_task(manager.begin_verification(user_id, guild_id))
    await wait_until(lambda: messages.EMAIL_PROMPT in platform.texts(user_id))
    await manager.handle_direct_message(user_id, email)
    return await task


def terminal_texts(platform, user_id=USER_ID):
    finals = {
        messages.VERIFIED,
        OTP_TIMEOUT_TEXT,
        GENERIC_VERIFICATION_FAILURE,
        GENERIC_ERROR,
    }
    return [text for text in platform.texts(user_id) if text in finals]


def build_manager(store, mailer, platform, **overrides):
    settings = VerificationSettings(
        **{
            "email_response_timeout": 0.3,
            "otp_ttl": 5.0,
            "sweep_interval": 60.0,
            "external_call_timeout": 1.0,
            **overrides,
        }
    )
    return VerificationSessionManager(store=store, mailer=mailer, platform=platform, settings=settings)


# ============================================================================
# STARTING A VERIFICATION
# ============================================================================


class TestBeginVerification:
    async def test_code_is_issued_and_mailed(self, manager, store, mailer, platform):
        outcome = await issue_code(manager, platform, email="  alice@uni.edu  ")

        assert outcome.issued is True
        assert outcome.error is None
        assert len(mailer.sent) == 1
        email, code = mailer.sent[0]
        assert email == "alice@uni.edu"
        assert len(code) == 6 and code.isdigit()

        record = await store.find_record(USER_ID, guild_id=GUILD_ID, verified=False)
        assert record.code == code
        assert record.email == "alice@uni.edu"

        session = manager.get_session(USER_ID)
        assert session.phase is SessionPhase.AWAITING_OTP
        assert session.expires_at is not None
        assert platform.texts(USER_ID) == [messages.EMAIL_PROMPT, messages.CODE_SENT]

    async def test_reissue_replaces_unverified_records(self, manager, store, mailer, platform):
        await store.create_record(USER_ID, GUILD_ID, "old@uni.edu", "111111")

        await issue_code(manager, platform)

        unverified = [r for r in store.records if not r.verified]
        assert len(unverified) == 1
        assert unverified[0].code == mailer.sent[0][1]

    async def test_second_verify_while_active_is_rejected(self, manager, platform):
        first = asyncio.create_task(manager.begin_verification(USER_ID, GUILD_ID))
        await wait_until(lambda: messages.EMAIL_PROMPT in platform.texts(USER_ID))

        second = await manager.begin_verification(USER_ID, GUILD_ID)

        assert isinstance(second.error, SessionAlreadyActive)
        assert second.issued is False
        assert any("already have an active verification" in t for t in platform.texts(USER_ID))
        assert manager.active_session_count() == 1

        await manager.handle_direct_message(USER_ID, "alice@uni.edu")
        assert (await first).issued is True

    async def test_simultaneous_verify_reserves_one_session(self, manager, platform):
        tasks = [
            asyncio.create_task(manager.begin_verification(USER_ID, GUILD_ID)) for _ in range(2)
        ]
        await wait_until(lambda: messages.EMAIL_PROMPT in platform.texts(USER_ID))
        await manager.handle_direct_message(USER_ID, "alice@uni.edu")

        outcomes = await asyncio.gather(*tasks)

        assert sum(o.issued for o in outcomes) == 1
        assert sum(isinstance(o.error, SessionAlreadyActive) for o in outcomes) == 1
        assert platform.texts(USER_ID).count(messages.EMAIL_PROMPT) == 1

    async def test_sessions_of_different_users_are_independent(self, manager, platform):
        other_user = USER_ID + 1

        first = await issue_code(manager, platform, user_id=USER_ID)
        second = await issue_code(manager, platform, user_id=other_user, email="bob@uni.edu")

        assert first.issued and second.issued
        assert manager.active_session_count() == 2

    async def test_missing_manage_roles_ends_session(self, manager, platform, mailer):
        platform.capabilities = BotCapabilities(manage_roles=False, view_channel=True)

        outcome = await manager.begin_verification(USER_ID, GUILD_ID)

        assert isinstance(outcome.error, InsufficientPermissions)
        assert outcome.error.missing == ["manage_roles"]
        assert platform.texts(USER_ID)[0].startswith("❌ Bot is missing required permissions")
        assert messages.EMAIL_PROMPT not in platform.texts(USER_ID)
        assert platform.hierarchy_requests == [GUILD_ID]
        assert manager.active_session_count() == 0
        assert mailer.sent == []

    async def test_verified_role_above_bot_is_rejected_before_prompt(self, manager, platform, mailer):
        platform.add_guild_role("Verified", position=20)

        outcome = await manager.begin_verification(USER_ID, GUILD_ID)

        assert outcome.issued is False
        assert isinstance(outcome.error, InsufficientPermissions)
        assert outcome.error.missing == ["role_hierarchy"]
        assert platform.texts(USER_ID)[0].startswith("❌ Bot is missing required permissions")
        assert messages.EMAIL_PROMPT not in platform.texts(USER_ID)
        assert platform.hierarchy_requests == [GUILD_ID]
        assert mailer.sent == []
        assert manager.active_session_count() == 0

    async def test_role_level_with_bot_is_rejected(self, manager, platform):
        platform.add_guild_role("Verified", position=platform.bot_top.position)

        outcome = await manager.begin_verification(USER_ID, GUILD_ID)

        assert isinstance(outcome.error, InsufficientPermissions)
        assert outcome.error.missing == ["role_hierarchy"]

    async def test_hierarchy_check_uses_configured_role(self, manager, store, platform):
        store.configs[GUILD_ID].role = "Student"
        platform.add_guild_role("Verified", position=20)

        outcome = await issue_code(manager, platform)

        assert outcome.issued is True

    async def test_guild_not_visible_is_a_permission_failure(self, manager, platform):
        platform.capabilities = None

        outcome = await manager.begin_verification(USER_ID, GUILD_ID)

        assert isinstance(outcome.error, InsufficientPermissions)
        assert manager.active_session_count() == 0

    async def test_already_verified_member_is_told_so(self, manager, store, platform):
        record = await store.create_record(USER_ID, GUILD_ID, "alice@uni.edu", "123456")
        record.verified = True

        outcome = await manager.begin_verification(USER_ID, GUILD_ID)

        assert isinstance(outcome.error, AlreadyVerified)
        assert platform.texts(USER_ID) == ["✅ You are already verified in this server."]
        assert manager.active_session_count() == 0

    async def test_verified_in_another_guild_does_not_block(self, manager, store, platform):
        record = await store.create_record(USER_ID, GUILD_ID + 5, "alice@uni.edu", "123456")
        record.verified = True

        outcome = await issue_code(manager, platform)

        assert outcome.issued is True

    async def test_no_email_reply_times_out(self, manager, platform, mailer):
        outcome = await manager.begin_verification(USER_ID, GUILD_ID)

        assert isinstance(outcome.error, ResponseTimeout)
        assert outcome.error.phase == "email"
        assert platform.texts(USER_ID) == [messages.EMAIL_PROMPT, EMAIL_TIMEOUT_TEXT]
        assert manager.active_session_count() == 0
        assert mailer.sent == []

    async def test_domain_not_on_allow_list(self, manager, platform, mailer):
        outcome = await issue_code(manager, platform, email="bob@evil.com")

        assert isinstance(outcome.error, DomainNotAllowed)
        assert platform.texts(USER_ID)[-1] == (
            "❌ The email domain is not allowed. Allowed domains: uni.edu"
        )
        assert mailer.sent == []
        assert manager.active_session_count() == 0

    async def test_address_without_at_sign_is_rejected(self, manager, platform):
        outcome = await issue_code(manager, platform, email="not-an-address")

        assert isinstance(outcome.error, DomainNotAllowed)

    async def test_subdomain_does_not_match(self, manager, platform):
        outcome = await issue_code(manager, platform, email="alice@mail.uni.edu")

        assert isinstance(outcome.error, DomainNotAllowed)

    async def test_unconfigured_guild_rejects_every_domain(self, manager, store, platform):
        store.configs.clear()

        outcome = await issue_code(manager, platform)

        assert isinstance(outcome.error, DomainNotAllowed)
        assert platform.texts(USER_ID)[-1].endswith("Allowed domains: None configured")

    async def test_mail_failure_ends_session(self, manager, platform, mailer):
        mailer.result = False

        outcome = await issue_code(manager, platform)

        assert isinstance(outcome.error, EmailDeliveryFailed)
        assert platform.texts(USER_ID)[-1] == (
            "❌ Failed to send verification email. Please try again later."
        )
        assert manager.active_session_count() == 0

    async def test_closed_dms_report_not_notified(self, manager, platform, mailer):
        platform.dm_ok = False

        outcome = await manager.begin_verification(USER_ID, GUILD_ID)

        assert outcome.issued is False
        assert outcome.notified is False
        assert outcome.error is None
        assert manager.active_session_count() == 0
        assert mailer.sent == []

    async def test_store_failure_sends_generic_error(self, manager, store, platform):
        store.fail_on.add("find_record")

        outcome = await manager.begin_verification(USER_ID, GUILD_ID)

        assert isinstance(outcome.error, ExternalServiceError)
        assert platform.texts(USER_ID) == [GENERIC_ERROR]
        assert manager.active_session_count() == 0


# ============================================================================
# DIRECT MESSAGES AND CODE SUBMISSION
# ============================================================================


class TestCodeSubmission:
    async def test_correct_code_verifies_and_grants_role(self, manager, store, mailer, platform):
        await issue_code(manager, platform)
        code = mailer.sent[0][1]

        await manager.handle_direct_message(USER_ID, f" {code} ")

        assert platform.texts(USER_ID)[-1] == messages.VERIFIED
        assert platform.created == ["Verified"]
        assert len(platform.added) == 1
        assert (await store.find_record(USER_ID, guild_id=GUILD_ID, verified=True)) is not None
        assert manager.get_session(USER_ID) is None

    async def test_configured_role_name_is_used(self, manager, store, mailer, platform):
        store.configs[GUILD_ID].role = "Student"
        await issue_code(manager, platform)

        assert await manager.submit_code(USER_ID, mailer.sent[0][1]) is True
        assert platform.created == ["Student"]

    async def test_existing_role_is_reused(self, manager, mailer, platform):
        role = platform.add_guild_role("verified", position=3)
        await issue_code(manager, platform)

        assert await manager.submit_code(USER_ID, mailer.sent[0][1]) is True
        assert platform.created == []
        assert platform.added == [(USER_ID, role.id)]

    async def test_member_already_holding_role_succeeds_without_add(self, manager, mailer, platform):
        role = platform.add_guild_role("Verified", position=3)
        platform.member_roles[USER_ID] = {role.id}
        await issue_code(manager, platform)

        assert await manager.submit_code(USER_ID, mailer.sent[0][1]) is True
        assert platform.added == []
        assert platform.texts(USER_ID)[-1] == messages.VERIFIED

    async def test_wrong_code_ends_session_with_generic_failure(self, manager, platform, mocker):
        mocker.patch(
            "emailgate.modules.verification.manager.generate_otp", return_value="123456"
        )
        await issue_code(manager, platform)

        assert await manager.submit_code(USER_ID, "654321") is False
        assert platform.texts(USER_ID)[-1] == GENERIC_VERIFICATION_FAILURE
        assert manager.get_session(USER_ID) is None

        await manager.handle_direct_message(USER_ID, "123456")
        assert platform.texts(USER_ID)[-1] == messages.NO_ACTIVE_SESSION

    async def test_role_hierarchy_failure_keeps_record_verified(self, manager, store, mailer, platform):
        role = platform.add_guild_role("Verified", position=3)
        await issue_code(manager, platform)
        # Role moved above the bot after the code was issued
        platform.roles["verified"] = RoleInfo(id=role.id, name=role.name, position=20)

        assert await manager.submit_code(USER_ID, mailer.sent[0][1]) is False

        assert platform.texts(USER_ID)[-1] == GENERIC_VERIFICATION_FAILURE
        assert platform.added == []
        assert platform.hierarchy_requests == [GUILD_ID]
        assert (await store.find_record(USER_ID, verified=True)) is not None

    async def test_member_left_guild(self, manager, mailer, platform):
        platform.absent_members.add(USER_ID)
        await issue_code(manager, platform)

        assert await manager.submit_code(USER_ID, mailer.sent[0][1]) is False
        assert platform.texts(USER_ID)[-1] == GENERIC_VERIFICATION_FAILURE

    async def test_role_creation_failure(self, manager, mailer, platform):
        platform.create_ok = False
        await issue_code(manager, platform)

        assert await manager.submit_code(USER_ID, mailer.sent[0][1]) is False
        assert platform.texts(USER_ID)[-1] == GENERIC_VERIFICATION_FAILURE

    async def test_dm_without_session(self, manager, platform):
        await manager.handle_direct_message(USER_ID, "hello")

        assert platform.texts(USER_ID) == [messages.NO_ACTIVE_SESSION]

    async def test_submit_without_session_returns_false(self, manager, platform):
        assert await manager.submit_code(USER_ID, "123456") is False
        assert platform.dms == []


# ============================================================================
# EXPIRY AND TEARDOWN
# ============================================================================


class TestExpiry:
    async def test_code_deadline_ends_session_once(self, store, mailer, platform):
        manager = build_manager(store, mailer, platform, otp_ttl=0.1)
        try:
            await issue_code(manager, platform)
            await wait_until(lambda: manager.get_session(USER_ID) is None)
            await asyncio.sleep(0.05)

            assert platform.texts(USER_ID).count(OTP_TIMEOUT_TEXT) == 1
            # The record is left for the store TTL to remove
            assert [(r.code, r.verified) for r in store.records] == [(mailer.sent[0][1], False)]

            await manager.handle_direct_message(USER_ID, mailer.sent[0][1])
            assert platform.texts(USER_ID)[-1] == messages.NO_ACTIVE_SESSION
            assert platform.added == []
        finally:
            await manager.shutdown()

    async def test_deadline_passing_during_code_check_sends_one_result(
        self, store, mailer, platform
    ):
        manager = build_manager(store, mailer, platform, otp_ttl=0.1)
        try:
            await issue_code(manager, platform)
            lookup = store.find_record

            async def slow_lookup(*args, **kwargs):
                await asyncio.sleep(0.2)
                return await lookup(*args, **kwargs)

            store.find_record = slow_lookup
            submitted = asyncio.create_task(manager.submit_code(USER_ID, mailer.sent[0][1]))
            await asyncio.sleep(0.15)
            assert await manager.sweep_expired() == 0

            assert await submitted is True
            await asyncio.sleep(0.05)
            assert terminal_texts(platform) == [messages.VERIFIED]
        finally:
            await manager.shutdown()

    @pytest.mark.parametrize("code_first", [True, False], ids=["code-first", "timer-first"])
    async def test_code_and_deadline_together_send_one_result(
        self, manager, mailer, platform, code_first
    ):
        await issue_code(manager, platform)
        manager.get_session(USER_ID).expires_at = utcnow()
        submit = manager.submit_code(USER_ID, mailer.sent[0][1])
        sweep = manager.sweep_expired()

        await asyncio.gather(*((submit, sweep) if code_first else (sweep, submit)))
        await asyncio.sleep(0)

        expected = messages.VERIFIED if code_first else OTP_TIMEOUT_TEXT
        assert terminal_texts(platform) == [expected]
        assert manager.get_session(USER_ID) is None

    async def test_sweep_removes_overdue_sessions(self, manager, platform):
        await issue_code(manager, platform)
        session = manager.get_session(USER_ID)
        session.expires_at = utcnow() - timedelta(seconds=1)

        swept = await manager.sweep_expired()
        await asyncio.sleep(0)

        assert swept == 1
        assert manager.get_session(USER_ID) is None
        assert session.expiry_task.cancelled() or session.expiry_task.done()
        assert platform.texts(USER_ID).count(OTP_TIMEOUT_TEXT) == 1

    async def test_sweep_leaves_live_sessions(self, manager, platform):
        await issue_code(manager, platform)

        assert await manager.sweep_expired() == 0
        assert manager.active_session_count() == 1

    async def test_shutdown_cancels_waiting_sessions(self, manager, platform):
        task = asyncio.create_task(manager.begin_verification(USER_ID, GUILD_ID))
        await wait_until(lambda: messages.EMAIL_PROMPT in platform.texts(USER_ID))

        await manager.shutdown()
        outcome = await task

        assert outcome.issued is False
        assert outcome.error is None
        assert manager.active_session_count() == 0

    async def test_shutdown_cancels_code_timers(self, manager, platform):
        await issue_code(manager, platform)
        session = manager.get_session(USER_ID)

        await manager.shutdown()
        await asyncio.sleep(0)

        assert manager.active_session_count() == 0
        assert session.expiry_task.cancelled()

    async def test_start_launches_sweep_loop(self, manager):
        await manager.start()
        await manager.start()

        assert manager.active_session_count() == 0
        await manager.shutdown()
