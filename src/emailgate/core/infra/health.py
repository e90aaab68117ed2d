"""
HTTP health endpoint for emailgate.

Purpose
-------
Serves `GET /health` and `GET /api/health` so a hosting platform can probe
the process. The report covers two things: whether the Discord gateway
session is ready and whether the database answers `SELECT 1`. It also
carries the service name and version and the log pipeline counters.

Report Structure
----------------
{
    "status": "OK",
    "service": str,
    "version": str,
    "bot": "Running" | "Starting",
    "database": "HEALTHY" | "UNHEALTHY",
    "logging": {"initialized": bool, "records_dropped": int, ...},
    "timestamp": str                      # ISO-8601, UTC
}

The endpoint always answers 200 while the process is up; the component
fields carry the detail.

Error Handling
--------------
- The database probe is bounded by `timeout_seconds`; a timeout or error
  reports UNHEALTHY
- The report builder never raises
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from aiohttp import web

from emailgate.core.logging.logger import get_logger, get_logging_health

logger = get_logger(__name__)

ReadyProbe = Callable[[], bool]
DatabaseProbe = Callable[[], Awaitable[bool]]


class HealthStatus(Enum):
    HEALTHY = "HEALTHY"
    UNHEALTHY = "UNHEALTHY"


class HealthServer:
    """
    Small aiohttp application exposing the health report.

    Parameters
    ----------
    bot_ready : Callable[[], bool]
        Returns True once the bot is connected
    database_check : Callable[[], Awaitable[bool]]
        Database probe, normally `DatabaseService.health_check`
    host, port : str, int
        Bind address
    service, version : str
        Identify the running build in the report
    timeout_seconds : float
        Upper bound for the database probe
    """

    DEFAULT_TIMEOUT_SECONDS: float = 5.0

    def __init__(
        self,
        bot_ready: ReadyProbe,
        database_check: DatabaseProbe,
        host: str = "0.0.0.0",
        port: int = 3000,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        service: str = "emailgate",
        version: str = "unknown",
    ) -> None:
        self.bot_ready = bot_ready
        self.database_check = database_check
        self.host = host
        self.port = port
        self.timeout_seconds = timeout_seconds
        self.service = service
        self.version = version
        self._runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self.handle_health)
        app.router.add_get("/api/health", self.handle_health)
        return app

    async def report(self) -> Dict[str, Any]:
        return {
            "status": "OK",
            "service": self.service,
            "version": self.version,
            "bot": "Running" if self.bot_ready() else "Starting",
            "database": (await self._database_status()).value,
            "logging": asdict(get_logging_health()),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def _database_status(self) -> HealthStatus:
        try:
            healthy = await asyncio.wait_for(self.database_check(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Database health probe timed out",
                extra={"timeout_seconds": self.timeout_seconds},
            )
            return HealthStatus.UNHEALTHY
        except Exception as exc:
            logger.error(
                "Database health probe failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return HealthStatus.UNHEALTHY
        return HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(await self.report())

    # --------------------------------------------------------------- #
    # Lifecycle
    # --------------------------------------------------------------- #

    async def start(self) -> None:
        if self._runner is not None:
            return
        runner = web.AppRunner(self.build_app(), access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        await site.start()
        self._runner = runner
        logger.info("Health server listening", extra={"host": self.host, "port": self.port})

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        logger.info("Health server stopped")

    @property
    def is_running(self) -> bool:
        return self._runner is not None
