"""
emailgate - Application Entry Point
===================================

Bootstrap
---------
- Config load and validation (missing settings exit with code 1)
- Logging
- Database initialization and schema creation
- Mail backend, store and bot construction
- Health endpoint
- Bot lifecycle and graceful shutdown
"""

from __future__ import annotations

import asyncio
import signal
import sys
from typing import Optional

from emailgate.bot.emailgate_bot import EmailGateBot
from emailgate.core.config.config import Config
from emailgate.core.config.errors import ConfigValidationError
from emailgate.core.database.service import DatabaseService
from emailgate.core.infra.health import HealthServer
from emailgate.core.logging.logger import get_logger, setup_logging, shutdown_logging
from emailgate.modules.verification.mailer import build_mail_sender
from emailgate.modules.verification.settings import VerificationSettings
from emailgate.modules.verification.store import VerificationStore

logger = get_logger(__name__)


# ============================================================================
# Configuration
# ============================================================================


def load_configuration() -> bool:
    """
    Load settings and start logging.

    Returns False after logging every missing variable at CRITICAL.
    """
    Config.load()
    setup_logging()

    try:
        Config.validate()
    except ConfigValidationError as exc:
        for name in exc.missing:
            logger.critical("Missing required environment variable: %s", name)
        logger.critical("Configuration validation failed: %s", exc)
        return False

    logger.info("✓ Configuration validated", extra={"config": Config.get_config_summary()})
    return True


# ============================================================================
# Application Bootstrap
# ============================================================================


async def _startup() -> tuple[EmailGateBot, HealthServer]:
    logger.info("========== EMAILGATE INITIALIZATION START ==========")

    try:
        await DatabaseService.initialize()
        await DatabaseService.create_schema()
        logger.info("✓ Database initialized")
    except Exception as exc:
        logger.critical(f"Database initialization failed: {exc}", exc_info=True)
        raise

    settings = VerificationSettings.from_config()
    store = VerificationStore(record_ttl_seconds=settings.otp_ttl)
    mailer = build_mail_sender()
    logger.info("✓ Mail backend ready", extra={"backend": type(mailer).__name__})

    bot = EmailGateBot(store=store, mailer=mailer, settings=settings)
    logger.info("✓ Bot initialized")

    health = HealthServer(
        bot_ready=lambda: bot.is_ready(),
        database_check=DatabaseService.health_check,
        port=Config.PORT,
        service=Config.BOT_NAME,
        version=Config.BOT_VERSION,
    )
    await health.start()
    logger.info("✓ Health endpoint started", extra={"port": Config.PORT})

    logger.info("========== INFRASTRUCTURE INITIALIZED SUCCESSFULLY ==========")
    return bot, health


# ============================================================================
# Application Shutdown
# ============================================================================


async def _shutdown(bot: Optional[EmailGateBot], health: Optional[HealthServer]) -> None:
    """Close the bot (and its session manager), the health server, then the database."""
    logger.info("========== EMAILGATE SHUTDOWN START ==========")

    if bot is not None and not bot.is_closed():
        try:
            await bot.close()
            logger.info("✓ Bot closed")
        except Exception as exc:
            logger.error(f"Error while closing bot: {exc}", exc_info=True)

    if health is not None:
        try:
            await health.stop()
            logger.info("✓ Health endpoint stopped")
        except Exception as exc:
            logger.error(f"Health endpoint shutdown error: {exc}", exc_info=True)

    try:
        await DatabaseService.shutdown()
        logger.info("✓ Database service shut down")
    except Exception as exc:
        logger.error(f"Database service shutdown error: {exc}", exc_info=True)

    logger.info("========== SHUTDOWN COMPLETE ==========")


def _install_signal_handlers(bot: EmailGateBot) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(bot.close()))
        except NotImplementedError:
            logger.debug("Signal handlers not supported on this platform")
            return


# ============================================================================
# Application Entrypoint
# ============================================================================


async def main() -> None:
    bot: Optional[EmailGateBot] = None
    health: Optional[HealthServer] = None

    try:
        bot, health = await _startup()
        _install_signal_handlers(bot)

        logger.info("Starting emailgate Discord bot...")
        await bot.start(Config.DISCORD_TOKEN)

    except asyncio.CancelledError:
        logger.warning("Asyncio task cancellation received; shutting down gracefully.")
        raise

    finally:
        await _shutdown(bot, health)


def run() -> None:
    """Console script entry point."""
    if not load_configuration():
        shutdown_logging()
        sys.exit(1)

    exit_code = 0
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot manually stopped via keyboard interrupt.")
    except Exception as exc:
        logger.critical(f"Fatal startup error: {exc}", exc_info=True)
        exit_code = 1
    finally:
        shutdown_logging()

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    run()
