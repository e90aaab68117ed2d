from __future__ import annotations

from dataclasses import dataclass

from emailgate.core.config.config import Config


@dataclass(frozen=True)
class VerificationSettings:
    """Tunables for the verification flow, snapshotted from Config."""

    email_response_timeout: float = 60.0
    otp_ttl: float = 600.0
    sweep_interval: float = 60.0
    external_call_timeout: float = 15.0
    default_role: str = "Verified"
    role_color: int = 0x00FF00

    @classmethod
    def from_config(cls) -> "VerificationSettings":
        return cls(
            email_response_timeout=float(Config.EMAIL_RESPONSE_TIMEOUT_SECONDS),
            otp_ttl=float(Config.OTP_TTL_SECONDS),
            sweep_interval=float(Config.SESSION_SWEEP_INTERVAL_SECONDS),
            external_call_timeout=float(Config.EXTERNAL_CALL_TIMEOUT_SECONDS),
            default_role=Config.DEFAULT_VERIFIED_ROLE,
            role_color=Config.VERIFIED_ROLE_COLOR,
        )
