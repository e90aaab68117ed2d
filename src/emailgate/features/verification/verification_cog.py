"""
Member-facing verification commands.

Discord layer only: `.verify` and `.vstatus`, the DM router that feeds
replies into the session manager, the on-join welcome DM and the periodic
purge of expired verification records.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import discord
from discord.ext import commands

from emailgate.bot.base_cog import BaseCog
from emailgate.core.logging.logger import LogContext
from emailgate.modules.verification import messages

RECORD_PURGE_INTERVAL_SECONDS = 60


def render_status(prefix: str, latency_ms: int, domains: str, onjoin: bool, role: str) -> str:
    p = prefix
    return (
        "```"
        f"Ping: {latency_ms}ms\n"
        "User commands:\n"
        f"   {p}verify -> Sends a DM to the user to verify their email\n"
        f"   {p}vstatus -> This help message\n\n"
        "Admin commands:\n"
        " - A domain must be added before users can be verified.\n"
        f" - Use {p}rolechange instead of server settings to change the name of the verified role.\n"
        f"   {p}enableonjoin -> Enables verifying users on join\n"
        f"   {p}disableonjoin -> Disables verifying users on join\n"
        f"   {p}domainadd domain -> Adds an email domain\n"
        f"   {p}domainremove domain -> Removes an email domain\n"
        f"   {p}rolechange role -> Changes the name of the verified role\n\n"
        f"Domains: {domains}\n"
        f"Verify when a user joins? (default=False): {onjoin}\n"
        f"Verified role (default=Verified): {role}"
        "```"
    )


class VerificationCog(BaseCog):
    """
    Email verification entry points.

    Commands
    --------
    .verify   start a verification by DM
    .vstatus  help text with the current server settings
    """

    def __init__(self, bot: commands.Bot) -> None:
        super().__init__(bot, "VerificationCog")
        self.manager = bot.verification
        self.guild_config = bot.guild_config
        self.store = bot.store
        self._purge_task: Optional[asyncio.Task] = None

    async def cog_load(self) -> None:
        self._purge_task = asyncio.create_task(self._purge_loop())

    async def cog_unload(self) -> None:
        if self._purge_task:
            self._purge_task.cancel()
            try:
                await self._purge_task
            except asyncio.CancelledError:
                pass
            self._purge_task = None

    # ===============================================================
    # Commands
    # ===============================================================

    @commands.command(name="verify", help="Verify your email address by DM")
    @commands.guild_only()
    async def verify(self, ctx: commands.Context) -> None:
        outcome = await self.manager.begin_verification(ctx.author.id, ctx.guild.id)
        if not outcome.notified:
            await self.reply_text(ctx, messages.DM_UNREACHABLE)

    @commands.command(name="vstatus", help="Show verification help and server settings")
    @commands.guild_only()
    async def vstatus(self, ctx: commands.Context) -> None:
        settings = await self.guild_config.get_settings(ctx.guild.id)
        text = render_status(
            prefix=ctx.prefix or ".",
            latency_ms=round(self.bot.latency * 1000),
            domains=settings.domains_display(),
            onjoin=settings.onjoin,
            role=settings.role,
        )
        await self.send_text(ctx, text)

    # ===============================================================
    # Listeners
    # ===============================================================

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is not None:
            return
        prefix = self.bot.command_prefix
        if isinstance(prefix, str) and message.content.startswith(prefix):
            return
        await self.manager.handle_direct_message(message.author.id, message.content)

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        if member.bot:
            return
        async with LogContext(user_id=member.id, guild_id=member.guild.id, command="on_member_join"):
            settings = await self.guild_config.get_settings(member.guild.id)
            if not settings.onjoin:
                return
            try:
                await member.send(messages.WELCOME)
            except discord.HTTPException as exc:
                self.logger.warning(
                    "Could not send welcome DM",
                    extra={"member": str(member), "error": str(exc)},
                )

    # ===============================================================
    # Background
    # ===============================================================

    async def _purge_loop(self) -> None:
        """Delete expired verification records every minute."""
        await self.bot.wait_until_ready()
        while True:
            try:
                await self.purge_records()
                await asyncio.sleep(RECORD_PURGE_INTERVAL_SECONDS)
            except asyncio.CancelledError:
                self.logger.debug("Record purge loop cancelled")
                break

    async def purge_records(self) -> int:
        try:
            return await self.store.purge_expired()
        except Exception as exc:
            self.logger.error(
                "Record purge failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )
            return 0


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(VerificationCog(bot))
