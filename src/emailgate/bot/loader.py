"""
Feature cog loader.

Discovers every `*_cog.py` module under `emailgate/features/` and loads it as
a discord.py extension with a per-cog timeout. A cog that fails to load is
logged and skipped; the summary reports loaded and failed counts.
"""

from __future__ import annotations

import asyncio
import importlib
import pkgutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from discord.ext import commands

from emailgate.core.logging.logger import get_logger

logger = get_logger(__name__)


@dataclass
class LoadResult:
    name: str
    success: bool
    duration_ms: float
    error: Optional[Exception] = None


class FeatureLoader:
    BASE_PATH: Path = Path(__file__).resolve().parent.parent / "features"
    BASE_PACKAGE: str = "emailgate.features"
    COG_SUFFIX: str = "_cog"

    def __init__(self, bot: commands.Bot, load_timeout_seconds: float = 30.0) -> None:
        self.bot = bot
        self.load_timeout_seconds = load_timeout_seconds
        self.load_results: List[LoadResult] = []

    def discover_cogs(self) -> List[str]:
        names = [
            name
            for _, name, ispkg in pkgutil.walk_packages(
                [str(self.BASE_PATH)], prefix=f"{self.BASE_PACKAGE}."
            )
            if not ispkg and name.endswith(self.COG_SUFFIX)
        ]
        return sorted(names)

    async def load_all_features(self) -> Dict[str, Any]:
        start = time.perf_counter()
        names = self.discover_cogs()
        if not names:
            logger.warning("No feature cogs discovered", extra={"base_path": str(self.BASE_PATH)})

        self.load_results = [await self._load(name) for name in names]

        stats = {
            "loaded": sum(1 for r in self.load_results if r.success),
            "failed": sum(1 for r in self.load_results if not r.success),
            "failed_cogs": [r.name for r in self.load_results if not r.success],
            "duration_ms": round((time.perf_counter() - start) * 1000, 2),
        }
        log = logger.warning if stats["failed"] else logger.info
        log("Feature cogs loaded", extra=stats)
        return stats

    async def _load(self, extension_name: str) -> LoadResult:
        start = time.perf_counter()
        try:
            module = importlib.import_module(extension_name)
            if not callable(getattr(module, "setup", None)):
                raise ValueError("Missing required setup() function")
            await asyncio.wait_for(
                self.bot.load_extension(extension_name),
                timeout=self.load_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.error(
                "Cog load timeout",
                extra={"cog_name": extension_name, "timeout_seconds": self.load_timeout_seconds},
            )
            return LoadResult(extension_name, False, (time.perf_counter() - start) * 1000, exc)
        except Exception as exc:
            logger.error(
                "Failed to load cog",
                extra={"cog_name": extension_name, "error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )
            return LoadResult(extension_name, False, (time.perf_counter() - start) * 1000, exc)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Cog loaded",
            extra={"cog_name": extension_name, "duration_ms": round(duration_ms, 2)},
        )
        return LoadResult(extension_name, True, duration_ms)


async def load_all_features(bot: commands.Bot) -> Dict[str, Any]:
    return await FeatureLoader(bot).load_all_features()
