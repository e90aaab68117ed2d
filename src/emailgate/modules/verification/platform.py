"""
Chat platform boundary.

The verification core talks to Discord only through `ChatPlatform`, using
plain ids and small value types. `emailgate.bot.platform.DiscordPlatform`
is the production implementation; tests use in-memory fakes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class BotCapabilities:
    """The bot's guild-level permissions relevant to verification."""

    manage_roles: bool
    view_channel: bool

    def missing(self) -> List[str]:
        names = []
        if not self.manage_roles:
            names.append("manage_roles")
        if not self.view_channel:
            names.append("view_channel")
        return names

    @property
    def sufficient(self) -> bool:
        return self.manage_roles and self.view_channel


@dataclass(frozen=True)
class RoleInfo:
    id: int
    name: str
    position: int


@dataclass(frozen=True)
class RoleHierarchyEntry:
    name: str
    position: int
    is_bot_role: bool
    manageable: bool


@dataclass(frozen=True)
class RoleHierarchyReport:
    """Snapshot of a guild's roles for operator diagnostics."""

    bot_top_role: Optional[str]
    bot_top_position: int
    roles: List[RoleHierarchyEntry] = field(default_factory=list)

    def as_log_extra(self) -> dict:
        return {
            "bot_top_role": self.bot_top_role,
            "bot_top_position": self.bot_top_position,
            "roles": [
                {
                    "name": r.name,
                    "position": r.position,
                    "is_bot_role": r.is_bot_role,
                    "manageable": r.manageable,
                }
                for r in self.roles
            ],
        }


@runtime_checkable
class ChatPlatform(Protocol):
    """
    Operations the verification core needs from the chat platform.

    Methods that return Optional use None for "not visible / not found";
    they raise only for unexpected transport failures.
    """

    async def send_direct_message(self, user_id: int, text: str) -> bool: ...

    async def get_capabilities(self, guild_id: int) -> Optional[BotCapabilities]: ...

    async def find_role(self, guild_id: int, name: str) -> Optional[RoleInfo]: ...

    async def create_role(self, guild_id: int, name: str, colour: int) -> Optional[RoleInfo]: ...

    async def get_bot_top_role(self, guild_id: int) -> Optional[RoleInfo]: ...

    async def member_has_role(self, guild_id: int, user_id: int, role_id: int) -> Optional[bool]: ...

    async def add_role(self, guild_id: int, user_id: int, role_id: int) -> bool: ...

    async def role_hierarchy_report(self, guild_id: int) -> Optional[RoleHierarchyReport]: ...
