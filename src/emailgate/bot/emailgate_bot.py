"""
emailgate Discord Bot - Main Bot Class

Purpose
-------
discord.py `commands.Bot` subclass that hosts the feature cogs and gives
them access to the verification services.

Responsibilities
----------------
- Gateway intents and the command prefix
- Feature cog loading in `setup_hook`
- Starting and stopping the session manager with the bot
- Global error handling for prefix commands

Non-Responsibilities
--------------------
- Verification rules (VerificationSessionManager)
- Database and logging setup (main)

Architecture Notes
------------------
Services are built by `main` and injected through the constructor. The
platform adapter needs the bot itself, so the session manager is created
here from the injected store, mailer and settings.
"""

from __future__ import annotations

import time
from typing import Optional

import discord
from discord.ext import commands

from emailgate.bot.loader import load_all_features
from emailgate.bot.platform import DiscordPlatform
from emailgate.core.config.config import Config
from emailgate.core.exceptions import EmailGateInfrastructureException
from emailgate.core.logging.logger import LogContext, get_logger
from emailgate.modules.guild_config.service import GuildConfigService
from emailgate.modules.shared.exceptions import EmailGateDomainException
from emailgate.modules.shared.registry import get_exception_template
from emailgate.modules.verification.mailer import MailSender
from emailgate.modules.verification.manager import VerificationSessionManager
from emailgate.modules.verification.roles import RoleGranter
from emailgate.modules.verification.settings import VerificationSettings
from emailgate.modules.verification.store import VerificationStore
from emailgate.ui.embeds import EmbedFactory

logger = get_logger(__name__)


def build_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.message_content = True
    intents.members = True
    intents.guilds = True
    intents.dm_messages = True
    return intents


class EmailGateBot(commands.Bot):
    """
    Discord bot with verification services attached.

    Attributes
    ----------
    store : VerificationStore
    guild_config : GuildConfigService
    verification : VerificationSessionManager
    platform : DiscordPlatform
    """

    def __init__(
        self,
        store: VerificationStore,
        mailer: MailSender,
        settings: Optional[VerificationSettings] = None,
        command_prefix: Optional[str] = None,
    ) -> None:
        super().__init__(
            command_prefix=command_prefix or Config.COMMAND_PREFIX,
            intents=build_intents(),
            help_command=None,
            case_insensitive=True,
            description=Config.BOT_DESCRIPTION,
        )

        self.settings = settings or VerificationSettings.from_config()
        self.store = store
        self.platform = DiscordPlatform(self)
        self.guild_config = GuildConfigService(store, default_role=self.settings.default_role)
        self.verification = VerificationSessionManager(
            store=store,
            mailer=mailer,
            platform=self.platform,
            roles=RoleGranter(self.platform, role_color=self.settings.role_color),
            settings=self.settings,
        )
        self.bot_ready: bool = False

    # --------------------------------------------------------------- #
    # Startup
    # --------------------------------------------------------------- #

    async def setup_hook(self) -> None:
        start = time.perf_counter()
        logger.info("=" * 60)
        logger.info("EMAILGATE BOT SETUP")
        logger.info("=" * 60)

        stats = await load_all_features(self)
        logger.info("✓ Feature cogs loaded (%d ok, %d failed)", stats["loaded"], stats["failed"])

        await self.verification.start()
        logger.info("✓ Verification session manager started")

        logger.info("✓ Bot setup complete (%.2fms)", (time.perf_counter() - start) * 1000)

    async def on_ready(self) -> None:
        self.bot_ready = True
        logger.info("=" * 60)
        logger.info("Bot is ONLINE as %s", self.user)
        logger.info("Guilds: %d", len(self.guilds))
        logger.info("=" * 60)

    # --------------------------------------------------------------- #
    # Error Handling - Prefix Commands
    # --------------------------------------------------------------- #

    async def on_command_error(self, ctx: commands.Context, error: Exception) -> None:
        async with LogContext(
            user_id=ctx.author.id,
            guild_id=ctx.guild.id if ctx.guild else None,
            command=f"prefix:{ctx.command}" if ctx.command else "unknown",
        ):
            if isinstance(error, commands.CommandNotFound):
                return

            original = getattr(error, "original", error)

            if isinstance(original, (EmailGateDomainException, EmailGateInfrastructureException)):
                response = get_exception_template(original).format(original)
                logger.warning(
                    "Exception in command handler", extra={"error": original.to_dict()}
                )
                await self._reply(
                    ctx,
                    EmbedFactory.for_severity(
                        response["title"], response["description"], response["severity"]
                    ),
                )
                return

            if isinstance(error, commands.NoPrivateMessage):
                await self._reply(
                    ctx,
                    EmbedFactory.warning(
                        "Server Only", "This command can only be used in a server."
                    ),
                )
                return

            if isinstance(error, commands.MissingPermissions):
                await self._reply(
                    ctx,
                    EmbedFactory.error(
                        "Permission Denied",
                        "You need administrator permission to use this command.",
                    ),
                )
                return

            if isinstance(error, commands.CheckFailure):
                await self._reply(
                    ctx,
                    EmbedFactory.error(
                        "Permission Denied", "You lack permission to use this command."
                    ),
                )
                return

            logger.error(
                "Unhandled command error",
                extra={"error": str(error), "error_type": type(original).__name__},
                exc_info=original,
            )
            await self._reply(
                ctx,
                EmbedFactory.error(
                    "Unexpected Error",
                    "Something went wrong while processing your command.",
                    help_text="The issue has been logged.",
                ),
            )

    async def _reply(self, ctx: commands.Context, embed: discord.Embed) -> None:
        try:
            await ctx.send(embed=embed)
        except discord.HTTPException as exc:
            logger.warning("Failed to send error reply", extra={"error": str(exc)})

    # --------------------------------------------------------------- #
    # Graceful Shutdown
    # --------------------------------------------------------------- #

    async def close(self) -> None:
        logger.info("=" * 60)
        logger.info("EMAILGATE BOT SHUTDOWN")
        logger.info("=" * 60)

        await self.verification.shutdown()
        logger.info("✓ Verification sessions cleared")

        await super().close()
        logger.info("✓ Bot shutdown complete")
