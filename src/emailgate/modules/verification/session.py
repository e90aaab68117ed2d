"""
In-memory verification session state.

A session lives in the manager's map from the moment `.verify` is accepted
until exactly one terminal outcome has been delivered. It is never persisted.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from emailgate.modules.shared.exceptions import VerificationError


class SessionPhase(str, Enum):
    AWAITING_EMAIL = "awaiting_email"
    AWAITING_OTP = "awaiting_otp"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(eq=False)
class VerificationSession:
    """
    State for one member's verification attempt.

    Attributes
    ----------
    user_id, guild_id:
        Member and server the attempt belongs to.
    phase:
        Which reply the session is waiting for.
    started_at:
        When the slot was reserved.
    expires_at:
        Code deadline; None until the code is mailed.
    expiry_task:
        The one timer that ends the session when the code deadline passes.
    reply:
        Resolved by the DM router with the member's email address.
    """

    user_id: int
    guild_id: int
    phase: SessionPhase = SessionPhase.AWAITING_EMAIL
    started_at: datetime = field(default_factory=utcnow)
    expires_at: Optional[datetime] = None
    expiry_task: Optional[asyncio.Task] = None
    reply: Optional[asyncio.Future] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utcnow()) >= self.expires_at

    def is_waiting_for_email(self) -> bool:
        return (
            self.phase is SessionPhase.AWAITING_EMAIL
            and self.reply is not None
            and not self.reply.done()
        )

    def cancel_pending(self) -> None:
        """Cancel the expiry timer and any unresolved reply future."""
        if self.expiry_task is not None and not self.expiry_task.done():
            self.expiry_task.cancel()
        if self.reply is not None and not self.reply.done():
            self.reply.cancel()


@dataclass(frozen=True)
class VerificationOutcome:
    """
    Result of `begin_verification`.

    issued:
        True when a code was mailed and the session now waits for it.
    error:
        The terminal error when the attempt ended early.
    notified:
        False when the member could not be reached by DM, so the caller
        should fall back to a channel reply.
    """

    issued: bool
    error: Optional[VerificationError | Exception] = None
    notified: bool = True
