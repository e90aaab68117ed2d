"""
Embed factory for emailgate channel replies.

All embeds carry a timestamp and the bot footer, and have their text
truncated to Discord's limits.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import discord

from emailgate.core.exceptions import ErrorSeverity


class EmbedColor:
    ERROR = 0xED4245
    WARNING = 0xFEE75C


TITLE_LIMIT = 256
DESCRIPTION_LIMIT = 4096
FOOTER_LIMIT = 2048
DEFAULT_FOOTER = "emailgate • email verification"


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


class EmbedFactory:
    """Standardized embeds for command replies."""

    @staticmethod
    def _base_embed(
        title: str,
        description: str,
        color: int,
        footer: Optional[str] = DEFAULT_FOOTER,
    ) -> discord.Embed:
        embed = discord.Embed(
            title=_truncate(title, TITLE_LIMIT),
            description=_truncate(description, DESCRIPTION_LIMIT),
            color=color,
            timestamp=datetime.now(timezone.utc),
        )
        if footer:
            embed.set_footer(text=_truncate(footer, FOOTER_LIMIT))
        return embed

    @staticmethod
    def error(title: str, description: str, help_text: Optional[str] = None) -> discord.Embed:
        if help_text:
            description = f"{description}\n\n💡 **Help:** {help_text}"
        return EmbedFactory._base_embed(title, description, EmbedColor.ERROR)

    @staticmethod
    def warning(title: str, description: str, footer: Optional[str] = None) -> discord.Embed:
        return EmbedFactory._base_embed(
            title, description, EmbedColor.WARNING, footer or DEFAULT_FOOTER
        )

    @staticmethod
    def for_severity(title: str, description: str, severity: ErrorSeverity) -> discord.Embed:
        """Error-ish embed coloured by how serious the failure is."""
        if severity in (ErrorSeverity.DEBUG, ErrorSeverity.INFO, ErrorSeverity.WARNING):
            return EmbedFactory.warning(title, description)
        return EmbedFactory.error(title, description)
