"""
Base Discord Cog for emailgate.

Cogs are thin Discord surfaces: they parse the command, call a service and
send the result. Error replies are rendered by the bot's global
`on_command_error` from the exception template registry.
"""

from __future__ import annotations

import discord
from discord.ext import commands

from emailgate.core.logging.logger import get_logger


class BaseCog(commands.Cog):
    """
    Base class for feature cogs.

    Attributes
    ----------
    bot : commands.Bot
        Discord bot instance
    cog_name : str
        Name of the cog for logging
    logger : Logger
        Structured logger for this cog
    """

    def __init__(self, bot: commands.Bot, cog_name: str) -> None:
        self.bot = bot
        self.cog_name = cog_name
        self.logger = get_logger(f"emailgate.features.{cog_name}")

    # ========================================================================
    # USER FEEDBACK UTILITIES
    # ========================================================================

    async def reply_text(self, ctx: commands.Context, text: str) -> None:
        """Reply to the invoking message; failures are logged, never raised."""
        try:
            await ctx.reply(text, mention_author=False)
        except discord.HTTPException as exc:
            self._log_send_failure("reply", exc)

    async def send_text(self, ctx: commands.Context, text: str) -> None:
        """Post to the invoking channel; failures are logged, never raised."""
        try:
            await ctx.send(text)
        except discord.HTTPException as exc:
            self._log_send_failure("send", exc)

    def _log_send_failure(self, action: str, exc: discord.HTTPException) -> None:
        self.logger.error(
            "Failed to send message to channel",
            extra={
                "cog_name": self.cog_name,
                "action": action,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
