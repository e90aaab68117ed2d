"""
Verification Session Manager

Purpose
-------
Owns every in-progress verification and drives it through

    (none) -> AWAITING_EMAIL -> AWAITING_OTP -> (none)

coordinating the store, the mailer and the chat platform. Exactly one
terminal DM is sent for every session that was accepted.

Concurrency Model
-----------------
Everything runs on the bot's event loop. The session map is only mutated in
synchronous stretches (no await between the check and the write):

- `begin_verification` reserves the user's slot before its first await, so
  two concurrent `.verify` calls cannot both pass the "already active" check.
- Popping a session from the map is the claim on its terminal outcome. The
  OTP handler, the per-session expiry task and the sweep all pop first and
  only the one that got the entry notifies the member.
- The expiry task compares identity (`is session`) so a stale timer never
  removes a newer session of the same user.

The email reply is a pending intent: a per-session Future resolved by
`handle_direct_message` and awaited with a bounded `asyncio.wait_for`.

Every call to a collaborator is bounded by the external call timeout; a
timeout or unexpected failure becomes `ExternalServiceError`, which ends the
session with a generic message. Nothing is retried.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any, Awaitable, Dict, Optional, TypeVar

from emailgate.core.exceptions import ExternalServiceError
from emailgate.core.logging.logger import LogContext, get_logger
from emailgate.modules.shared.base_service import BaseService
from emailgate.modules.shared.exceptions import (
    AlreadyVerified,
    DomainNotAllowed,
    EmailDeliveryFailed,
    EmailGateDomainException,
    InsufficientPermissions,
    InvalidCode,
    ResponseTimeout,
    RoleAssignmentFailed,
    RoleCreationFailed,
    SessionAlreadyActive,
    VerificationError,
)
from emailgate.modules.shared.registry import GENERIC_ERROR, user_message
from emailgate.modules.verification import messages
from emailgate.modules.verification.mailer import MailSender
from emailgate.modules.verification.otp import (
    extract_domain,
    generate_otp,
    is_domain_allowed,
    normalize_code,
)
from emailgate.modules.verification.platform import ChatPlatform
from emailgate.modules.verification.roles import RoleGranter
from emailgate.modules.verification.session import (
    SessionPhase,
    VerificationOutcome,
    VerificationSession,
    utcnow,
)
from emailgate.modules.verification.settings import VerificationSettings
from emailgate.modules.verification.store import VerificationStore

logger = get_logger(__name__)

T = TypeVar("T")

_ROLE_FAILURES = (RoleAssignmentFailed, RoleCreationFailed, InsufficientPermissions)


class VerificationSessionManager(BaseService):
    """
    In-memory owner of verification sessions, one per user across all guilds.

    Lifecycle
    ---------
    - start(): launch the periodic sweep
    - shutdown(): stop the sweep, cancel every timer and pending reply, clear
      the map

    Public API
    ----------
    - begin_verification(user_id, guild_id) -> VerificationOutcome
    - handle_direct_message(user_id, text)
    - submit_code(user_id, text) -> bool
    - sweep_expired() -> int
    - active_session_count() / get_session(user_id)
    """

    def __init__(
        self,
        store: VerificationStore,
        mailer: MailSender,
        platform: ChatPlatform,
        roles: Optional[RoleGranter] = None,
        settings: Optional[VerificationSettings] = None,
    ) -> None:
        super().__init__(logger)
        self.store = store
        self.mailer = mailer
        self.platform = platform
        self.settings = settings or VerificationSettings()
        self.roles = roles or RoleGranter(platform, role_color=self.settings.role_color)
        self._sessions: Dict[int, VerificationSession] = {}
        self._sweep_task: Optional[asyncio.Task] = None
        self._closing = False

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> None:
        self._closing = False
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(
                self._sweep_loop(), name="verification-session-sweep"
            )
        self.log.info(
            "Verification session manager started",
            extra={"sweep_interval": self.settings.sweep_interval},
        )

    async def shutdown(self) -> None:
        self._closing = True

        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            session.cancel_pending()

        self.log.info(
            "Verification session manager stopped",
            extra={"dropped_sessions": len(sessions)},
        )

    # ========================================================================
    # Observability
    # ========================================================================

    def active_session_count(self) -> int:
        return len(self._sessions)

    def get_session(self, user_id: int) -> Optional[VerificationSession]:
        return self._sessions.get(user_id)

    # ========================================================================
    # Start
    # ========================================================================

    async def begin_verification(self, user_id: int, guild_id: int) -> VerificationOutcome:
        """
        Start a verification for `user_id` in `guild_id` and run it up to the
        point where the code has been mailed.

        Returns once the attempt either issued a code (the session then waits
        for the code in DMs) or ended with a terminal error, which has already
        been sent to the member by DM when possible.
        """
        async with LogContext(user_id=user_id, guild_id=guild_id, command="verify"):
            existing = self._sessions.get(user_id)
            if existing is not None:
                error = SessionAlreadyActive(user_id, guild_id)
                self.log.info(
                    "Verification rejected; session already active",
                    extra={"phase": existing.phase.value, "session_guild_id": existing.guild_id},
                )
                notified = await self._notify(user_id, user_message(error))
                return VerificationOutcome(issued=False, error=error, notified=notified)

            session = VerificationSession(user_id=user_id, guild_id=guild_id)
            session.reply = asyncio.get_running_loop().create_future()
            self._sessions[user_id] = session

            try:
                return await self._run_until_issued(session)
            except asyncio.CancelledError:
                self._release(session)
                if self._closing:
                    return VerificationOutcome(issued=False)
                raise
            except (VerificationError, ExternalServiceError) as exc:
                self._release(session)
                self._log_outcome(exc)
                if isinstance(exc, InsufficientPermissions):
                    await self._log_hierarchy(guild_id, "insufficient_permissions")
                notified = await self._notify(user_id, user_message(exc))
                return VerificationOutcome(issued=False, error=exc, notified=notified)
            except Exception as exc:
                self._release(session)
                self.log.exception("Unexpected error during verification")
                notified = await self._notify(user_id, GENERIC_ERROR)
                return VerificationOutcome(issued=False, error=exc, notified=notified)

    async def _run_until_issued(self, session: VerificationSession) -> VerificationOutcome:
        user_id, guild_id = session.user_id, session.guild_id

        capabilities = await self._call(
            "platform", "get_capabilities", self.platform.get_capabilities(guild_id)
        )
        if capabilities is None:
            raise InsufficientPermissions(user_id, guild_id, ["guild_visible"])
        if not capabilities.sufficient:
            raise InsufficientPermissions(user_id, guild_id, capabilities.missing())

        config = await self._call(
            "store", "find_guild_config", self.store.find_guild_config(guild_id)
        )
        await self._call(
            "platform",
            "check_hierarchy",
            self.roles.check_hierarchy(user_id, guild_id, self._role_name(config)),
        )

        verified = await self._call(
            "store",
            "find_record",
            self.store.find_record(user_id, guild_id=guild_id, verified=True),
        )
        if verified is not None:
            raise AlreadyVerified(user_id, guild_id)

        if not await self._notify(user_id, messages.EMAIL_PROMPT):
            self._release(session)
            return VerificationOutcome(issued=False, notified=False)

        assert session.reply is not None
        try:
            reply = await asyncio.wait_for(
                session.reply, timeout=self.settings.email_response_timeout
            )
        except asyncio.TimeoutError:
            raise ResponseTimeout(user_id, guild_id, "email") from None

        email = reply.strip()
        domain = extract_domain(email)
        config = await self._call(
            "store", "find_guild_config", self.store.find_guild_config(guild_id)
        )
        allowed = list(config.domains) if config is not None else []
        if config is None or not is_domain_allowed(domain, allowed):
            raise DomainNotAllowed(user_id, guild_id, domain or "", allowed)

        await self._call(
            "store",
            "delete_records",
            self.store.delete_records(user_id, guild_id, verified=False),
        )
        code = generate_otp()
        await self._call(
            "store", "create_record", self.store.create_record(user_id, guild_id, email, code)
        )
        sent = await self._call("mailer", "send", self.mailer.send(email, code))
        if not sent:
            raise EmailDeliveryFailed(user_id, guild_id, email)

        if self._sessions.get(user_id) is not session:
            # Torn down while the mail was in flight
            return VerificationOutcome(issued=False)

        session.phase = SessionPhase.AWAITING_OTP
        session.expires_at = utcnow() + timedelta(seconds=self.settings.otp_ttl)
        session.expiry_task = asyncio.create_task(
            self._expire_later(session), name=f"verification-expiry-{user_id}"
        )
        self.log.info(
            "Verification code issued",
            extra={"domain": domain, "expires_at": session.expires_at.isoformat()},
        )

        notified = await self._notify(user_id, messages.CODE_SENT)
        return VerificationOutcome(issued=True, notified=notified)

    # ========================================================================
    # Inbound DMs
    # ========================================================================

    async def handle_direct_message(self, user_id: int, text: str) -> None:
        """Route one DM from a member to whatever their session is waiting for."""
        session = self._sessions.get(user_id)
        if session is None:
            await self._notify(user_id, messages.NO_ACTIVE_SESSION)
            return

        if session.phase is SessionPhase.AWAITING_EMAIL:
            if session.is_waiting_for_email():
                session.reply.set_result(text)
            else:
                self.log.debug(
                    "DM ignored; email already being processed",
                    extra={"user_id": user_id},
                )
            return

        await self.submit_code(user_id, text)

    async def submit_code(self, user_id: int, text: str) -> bool:
        """
        Consume the session with the submitted code.

        Returns True when the member ended up verified with the role granted.
        """
        session = self._sessions.get(user_id)
        if session is None or session.phase is not SessionPhase.AWAITING_OTP:
            return False

        # Claim: from here on this call owns the terminal DM
        del self._sessions[user_id]
        session.cancel_pending()

        async with LogContext(
            user_id=user_id, guild_id=session.guild_id, phase=SessionPhase.AWAITING_OTP.value
        ):
            try:
                await self._complete(session, text)
            except (VerificationError, ExternalServiceError) as exc:
                self._log_outcome(exc)
                if isinstance(exc, _ROLE_FAILURES):
                    await self._log_hierarchy(exc.guild_id or session.guild_id, exc.error_code)
                await self._notify(user_id, user_message(exc))
                return False
            except Exception:
                self.log.exception("Unexpected error while completing verification")
                await self._notify(user_id, GENERIC_ERROR)
                return False

            self.log_operation("verification_completed", user_id=user_id)
            await self._notify(user_id, messages.VERIFIED)
            return True

    async def _complete(self, session: VerificationSession, text: str) -> None:
        user_id = session.user_id
        code = normalize_code(text)

        record = await self._call(
            "store",
            "find_record",
            self.store.find_record(user_id, code=code, verified=False),
        )
        if record is None:
            raise InvalidCode(user_id, session.guild_id)

        marked = await self._call("store", "mark_verified", self.store.mark_verified(record.id))
        if not marked:
            raise InvalidCode(user_id, session.guild_id)

        guild_id = record.guild_id
        config = await self._call(
            "store", "find_guild_config", self.store.find_guild_config(guild_id)
        )
        await self._call(
            "platform",
            "grant_role",
            self.roles.grant(user_id, guild_id, self._role_name(config)),
        )

    # ========================================================================
    # Expiry
    # ========================================================================

    async def _expire_later(self, session: VerificationSession) -> None:
        assert session.expires_at is not None
        delay = (session.expires_at - utcnow()).total_seconds()
        await asyncio.sleep(max(0.0, delay))

        if self._sessions.get(session.user_id) is not session:
            return
        del self._sessions[session.user_id]

        with LogContext(user_id=session.user_id, guild_id=session.guild_id):
            self.log.info("Verification expired waiting for code")
            await self._notify(
                session.user_id,
                user_message(ResponseTimeout(session.user_id, session.guild_id, "otp")),
            )

    async def sweep_expired(self) -> int:
        """
        Remove every session past its code deadline whose timer has not
        claimed it, cancel its timer and send the timeout DM.
        """
        now = utcnow()
        swept = []
        for user_id, session in list(self._sessions.items()):
            if session.is_expired(now):
                del self._sessions[user_id]
                session.cancel_pending()
                swept.append(session)

        for session in swept:
            await self._notify(
                session.user_id,
                user_message(ResponseTimeout(session.user_id, session.guild_id, "otp")),
            )

        if swept:
            self.log.warning(
                "Swept expired verification sessions",
                extra={"count": len(swept)},
            )
        return len(swept)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.sweep_interval)
            try:
                await self.sweep_expired()
            except Exception:
                self.log.exception("Verification session sweep failed")

    # ========================================================================
    # Helpers
    # ========================================================================

    def _role_name(self, config: Any) -> str:
        if config is not None and config.role:
            return config.role
        return self.settings.default_role

    def _release(self, session: VerificationSession) -> None:
        if self._sessions.get(session.user_id) is session:
            del self._sessions[session.user_id]
        session.cancel_pending()

    async def _call(self, service: str, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.settings.external_call_timeout)
        except asyncio.TimeoutError as exc:
            raise ExternalServiceError(service, operation, timed_out=True) from exc
        except EmailGateDomainException:
            raise
        except Exception as exc:
            raise ExternalServiceError(service, operation, original_error=exc) from exc

    async def _notify(self, user_id: int, text: str) -> bool:
        """Send a DM; failures are logged and reported as False."""
        try:
            delivered = await asyncio.wait_for(
                self.platform.send_direct_message(user_id, text),
                timeout=self.settings.external_call_timeout,
            )
        except asyncio.TimeoutError:
            self.log.warning("Direct message timed out", extra={"target_user_id": user_id})
            return False
        except Exception as exc:
            self.log_error("send_direct_message", exc, target_user_id=user_id)
            return False

        if not delivered:
            self.log.warning("Direct message not delivered", extra={"target_user_id": user_id})
        return bool(delivered)

    async def _log_hierarchy(self, guild_id: int, reason: str) -> None:
        try:
            await asyncio.wait_for(
                self.roles.log_hierarchy(guild_id, reason),
                timeout=self.settings.external_call_timeout,
            )
        except asyncio.TimeoutError:
            self.log.warning("Role hierarchy diagnostic timed out", extra={"guild_id": guild_id})

    def _log_outcome(self, exc: Any) -> None:
        level = getattr(logging, exc.severity.value.upper(), logging.INFO)
        self.log.log(level, f"Verification ended: {exc.error_code}", extra={"error": exc.to_dict()})
