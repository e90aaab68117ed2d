"""
Administrator commands for per-server verification settings.

All commands are guild-only and require the Administrator permission.
Validation errors from GuildConfigService reach the bot's global
`on_command_error`, which renders them from the template registry.
"""

from __future__ import annotations

from typing import Optional

from discord.ext import commands

from emailgate.bot.base_cog import BaseCog
from emailgate.core.logging.logger import LogContext
from emailgate.modules.verification import messages


class SettingsCog(BaseCog):
    def __init__(self, bot: commands.Bot) -> None:
        super().__init__(bot, "SettingsCog")
        self.guild_config = bot.guild_config

    # ===============================================================
    # On-join prompt
    # ===============================================================

    @commands.command(name="enableonjoin", help="Enable the verification DM for new members")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def enable_onjoin(self, ctx: commands.Context) -> None:
        async with LogContext(user_id=ctx.author.id, guild_id=ctx.guild.id, command="enableonjoin"):
            await self.guild_config.set_onjoin(ctx.guild.id, True)
            await self.reply_text(ctx, messages.ONJOIN_ENABLED)

    @commands.command(name="disableonjoin", help="Disable the verification DM for new members")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def disable_onjoin(self, ctx: commands.Context) -> None:
        async with LogContext(user_id=ctx.author.id, guild_id=ctx.guild.id, command="disableonjoin"):
            await self.guild_config.set_onjoin(ctx.guild.id, False)
            await self.reply_text(ctx, messages.ONJOIN_DISABLED)

    # ===============================================================
    # Domain allow-list
    # ===============================================================

    @commands.command(name="domainadd", help="Allow an email domain")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def domain_add(self, ctx: commands.Context, domain: Optional[str] = None) -> None:
        if not domain:
            await self.reply_text(ctx, messages.MISSING_DOMAIN_ADD)
            return
        async with LogContext(user_id=ctx.author.id, guild_id=ctx.guild.id, command="domainadd"):
            await self.guild_config.add_domain(ctx.guild.id, domain)
            await self.reply_text(ctx, messages.DOMAIN_ADDED.format(domain=domain.strip()))

    @commands.command(name="domainremove", help="Remove an allowed email domain")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def domain_remove(self, ctx: commands.Context, domain: Optional[str] = None) -> None:
        if not domain:
            await self.reply_text(ctx, messages.MISSING_DOMAIN_REMOVE)
            return
        async with LogContext(user_id=ctx.author.id, guild_id=ctx.guild.id, command="domainremove"):
            await self.guild_config.remove_domain(ctx.guild.id, domain)
            await self.reply_text(ctx, messages.DOMAIN_REMOVED.format(domain=domain.strip()))

    # ===============================================================
    # Verified role
    # ===============================================================

    @commands.command(name="rolechange", help="Change the name of the verified role")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def role_change(self, ctx: commands.Context, role: Optional[str] = None) -> None:
        if not role:
            await self.reply_text(ctx, messages.MISSING_ROLE)
            return
        async with LogContext(user_id=ctx.author.id, guild_id=ctx.guild.id, command="rolechange"):
            settings = await self.guild_config.set_role(ctx.guild.id, role)
            await self.reply_text(ctx, messages.ROLE_CHANGED.format(role=settings.role))


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(SettingsCog(bot))
