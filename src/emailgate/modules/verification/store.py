"""
Verification Store - persistence gateway for records and guild settings.

Purpose
-------
All SQL the bot runs lives here. The session manager and the guild config
service depend on this class, never on sessions or models directly.

Record lifetime
---------------
A verification record counts as present only while
`created_at > now - ttl`. Every read applies that window and
`purge_expired()` (run every minute by the bot) deletes what fell out of it,
so a stale code can never match even between purges. Verified records expire
the same way.

Guild configs are created by upsert on the first admin command and never
deleted.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert

from emailgate.core.database.service import DatabaseService
from emailgate.core.logging.logger import get_logger
from emailgate.database.models import GuildConfig, VerificationRecord

logger = get_logger(__name__)

_GUILD_CONFIG_FIELDS = frozenset({"domains", "onjoin", "role"})


class VerificationStore:
    """
    Async gateway over `verification_records` and `guild_configs`.

    Args:
        record_ttl_seconds: Age after which a record is treated as gone
        database: DatabaseService class (or a compatible stand-in)
    """

    def __init__(
        self,
        record_ttl_seconds: float = 600.0,
        database: type[DatabaseService] = DatabaseService,
    ) -> None:
        self.record_ttl = timedelta(seconds=record_ttl_seconds)
        self._db = database

    def _cutoff(self) -> datetime:
        return datetime.now(timezone.utc) - self.record_ttl

    # ========================================================================
    # Verification records
    # ========================================================================

    async def find_record(
        self,
        user_id: int,
        *,
        guild_id: Optional[int] = None,
        code: Optional[str] = None,
        verified: Optional[bool] = None,
    ) -> Optional[VerificationRecord]:
        """Newest live record matching every given filter, or None."""
        stmt = select(VerificationRecord).where(
            VerificationRecord.user_id == user_id,
            VerificationRecord.created_at > self._cutoff(),
        )
        if guild_id is not None:
            stmt = stmt.where(VerificationRecord.guild_id == guild_id)
        if code is not None:
            stmt = stmt.where(VerificationRecord.code == code)
        if verified is not None:
            stmt = stmt.where(VerificationRecord.verified.is_(verified))
        stmt = stmt.order_by(VerificationRecord.created_at.desc()).limit(1)

        async with self._db.get_session() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def create_record(
        self, user_id: int, guild_id: int, email: str, code: str
    ) -> VerificationRecord:
        async with self._db.get_transaction() as session:
            record = VerificationRecord(
                user_id=user_id,
                guild_id=guild_id,
                email=email,
                code=code,
                verified=False,
            )
            session.add(record)
            await session.flush()
            await session.refresh(record)

        logger.debug(
            "Verification record created",
            extra={"record_id": record.id, "user_id": user_id, "guild_id": guild_id},
        )
        return record

    async def mark_verified(self, record_id: int) -> bool:
        """Flag a record as verified. Returns False if it no longer exists."""
        async with self._db.get_transaction() as session:
            result = await session.execute(
                update(VerificationRecord)
                .where(VerificationRecord.id == record_id)
                .values(verified=True)
            )
            return (result.rowcount or 0) > 0

    async def delete_records(
        self, user_id: int, guild_id: int, *, verified: Optional[bool] = None
    ) -> int:
        stmt = delete(VerificationRecord).where(
            VerificationRecord.user_id == user_id,
            VerificationRecord.guild_id == guild_id,
        )
        if verified is not None:
            stmt = stmt.where(VerificationRecord.verified.is_(verified))

        async with self._db.get_transaction() as session:
            result = await session.execute(stmt)
            return result.rowcount or 0

    async def purge_expired(self) -> int:
        """Delete every record older than the TTL. Returns the number removed."""
        async with self._db.get_transaction() as session:
            result = await session.execute(
                delete(VerificationRecord).where(
                    VerificationRecord.created_at <= self._cutoff()
                )
            )
            removed = result.rowcount or 0

        if removed:
            logger.info("Purged expired verification records", extra={"removed": removed})
        return removed

    # ========================================================================
    # Guild configuration
    # ========================================================================

    async def find_guild_config(self, guild_id: int) -> Optional[GuildConfig]:
        async with self._db.get_session() as session:
            return await session.get(GuildConfig, guild_id)

    async def upsert_guild_config(self, guild_id: int, **fields: Any) -> GuildConfig:
        """
        Create the guild's config if absent, then apply `fields`.

        Only `domains`, `onjoin` and `role` may be set.
        """
        unknown = set(fields) - _GUILD_CONFIG_FIELDS
        if unknown:
            raise ValueError(f"Unknown guild config fields: {sorted(unknown)}")

        async with self._db.get_transaction() as session:
            stmt = pg_insert(GuildConfig).values(guild_id=guild_id, **fields)
            if fields:
                stmt = stmt.on_conflict_do_update(
                    index_elements=[GuildConfig.guild_id], set_=fields
                )
            else:
                stmt = stmt.on_conflict_do_nothing(index_elements=[GuildConfig.guild_id])
            await session.execute(stmt)
            config = await session.get(GuildConfig, guild_id, populate_existing=True)

        assert config is not None
        return config

    async def add_domain(self, guild_id: int, domain: str) -> GuildConfig:
        """Add a domain to the allow-list, creating the config if needed. Idempotent."""
        async with self._db.get_transaction() as session:
            await session.execute(
                pg_insert(GuildConfig)
                .values(guild_id=guild_id, domains=[])
                .on_conflict_do_nothing(index_elements=[GuildConfig.guild_id])
            )
            config = await session.get(
                GuildConfig, guild_id, with_for_update=True, populate_existing=True
            )
            assert config is not None
            if domain not in config.domains:
                config.domains = [*config.domains, domain]
        return config

    async def remove_domain(self, guild_id: int, domain: str) -> Optional[GuildConfig]:
        """Remove a domain. No-op when the domain or the config is absent."""
        async with self._db.get_transaction() as session:
            config = await session.get(GuildConfig, guild_id, with_for_update=True)
            if config is None:
                return None
            if domain in config.domains:
                config.domains = [d for d in config.domains if d != domain]
        return config
