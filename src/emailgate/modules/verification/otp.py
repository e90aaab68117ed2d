"""One-time code generation and email domain rules."""

from __future__ import annotations

import secrets
from typing import Iterable, Optional

OTP_LENGTH = 6
_OTP_SPACE = 10**OTP_LENGTH


def generate_otp() -> str:
    """Uniform six digit code from the OS CSPRNG, leading zeros kept."""
    return f"{secrets.randbelow(_OTP_SPACE):0{OTP_LENGTH}d}"


def extract_domain(email: str) -> Optional[str]:
    """
    Return the text after the last "@", or None when there is no "@" or
    nothing follows it.

    >>> extract_domain("a@b@uni.edu")
    'uni.edu'
    >>> extract_domain("nobody") is None
    True
    """
    local, sep, domain = email.strip().rpartition("@")
    if not sep or not domain:
        return None
    return domain


def is_domain_allowed(domain: Optional[str], allowed: Iterable[str]) -> bool:
    # Exact match, same as the stored allow-list entries
    return bool(domain) and domain in set(allowed)


def normalize_code(text: str) -> str:
    return text.strip()
