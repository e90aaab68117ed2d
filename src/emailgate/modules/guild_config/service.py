"""
Guild configuration service.

Backs the administrator commands: the email domain allow-list, the on-join
prompt toggle and the name of the role granted on success. Values are
validated here; persistence is delegated to VerificationStore.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from emailgate.core.logging.logger import get_logger
from emailgate.database.models import DEFAULT_ROLE_NAME
from emailgate.modules.shared.base_service import BaseService
from emailgate.modules.shared.exceptions import ValidationError
from emailgate.modules.verification.store import VerificationStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class GuildSettings:
    domains: List[str] = field(default_factory=list)
    onjoin: bool = False
    role: str = DEFAULT_ROLE_NAME

    def domains_display(self, empty: str = "None") -> str:
        return ", ".join(self.domains) if self.domains else empty


class GuildConfigService(BaseService):
    def __init__(self, store: VerificationStore, default_role: str = DEFAULT_ROLE_NAME) -> None:
        super().__init__(logger)
        self.store = store
        self.default_role = default_role

    @staticmethod
    def _clean(field_name: str, value: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValidationError(field_name, "must not be empty")
        return cleaned

    async def get_settings(self, guild_id: int) -> GuildSettings:
        """Current settings, with defaults when the guild was never configured."""
        config = await self.store.find_guild_config(guild_id)
        if config is None:
            return GuildSettings(role=self.default_role)
        return GuildSettings(
            domains=list(config.domains or []),
            onjoin=bool(config.onjoin),
            role=config.role or self.default_role,
        )

    async def add_domain(self, guild_id: int, domain: str) -> GuildSettings:
        domain = self._clean("domain", domain)
        await self.store.add_domain(guild_id, domain)
        self.log_operation("domain_added", guild_id=guild_id, domain=domain)
        return await self.get_settings(guild_id)

    async def remove_domain(self, guild_id: int, domain: str) -> GuildSettings:
        domain = self._clean("domain", domain)
        await self.store.remove_domain(guild_id, domain)
        self.log_operation("domain_removed", guild_id=guild_id, domain=domain)
        return await self.get_settings(guild_id)

    async def set_onjoin(self, guild_id: int, enabled: bool) -> GuildSettings:
        await self.store.upsert_guild_config(guild_id, onjoin=enabled)
        self.log_operation("onjoin_changed", guild_id=guild_id, enabled=enabled)
        return await self.get_settings(guild_id)

    async def set_role(self, guild_id: int, role_name: str) -> GuildSettings:
        role_name = self._clean("role", role_name)
        if len(role_name) > 100:
            raise ValidationError("role", "must be at most 100 characters")
        await self.store.upsert_guild_config(guild_id, role=role_name)
        self.log_operation("role_changed", guild_id=guild_id, role=role_name)
        return await self.get_settings(guild_id)
