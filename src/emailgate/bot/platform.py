"""
discord.py implementation of the ChatPlatform boundary.

Translates plain ids into discord.py objects, prefers the gateway cache and
falls back to REST fetches for users and members. Discord permission and
HTTP errors are turned into "not delivered / not found" results; anything
else propagates and is reported by the session manager as a platform
failure.
"""

from __future__ import annotations

from typing import Optional

import discord
from discord.ext import commands

from emailgate.core.logging.logger import get_logger
from emailgate.modules.verification.platform import (
    BotCapabilities,
    RoleHierarchyEntry,
    RoleHierarchyReport,
    RoleInfo,
)

logger = get_logger(__name__)

ROLE_REASON = "Email verification"


def _role_info(role: discord.Role) -> RoleInfo:
    return RoleInfo(id=role.id, name=role.name, position=role.position)


class DiscordPlatform:
    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    # --------------------------------------------------------------- #
    # Lookups
    # --------------------------------------------------------------- #

    async def _get_user(self, user_id: int) -> Optional[discord.abc.User]:
        user = self.bot.get_user(user_id)
        if user is not None:
            return user
        try:
            return await self.bot.fetch_user(user_id)
        except (discord.NotFound, discord.HTTPException):
            return None

    async def _get_member(self, guild: discord.Guild, user_id: int) -> Optional[discord.Member]:
        member = guild.get_member(user_id)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user_id)
        except (discord.NotFound, discord.Forbidden, discord.HTTPException):
            return None

    # --------------------------------------------------------------- #
    # ChatPlatform
    # --------------------------------------------------------------- #

    async def send_direct_message(self, user_id: int, text: str) -> bool:
        user = await self._get_user(user_id)
        if user is None:
            logger.warning("DM target not found", extra={"target_user_id": user_id})
            return False
        try:
            await user.send(text)
        except discord.Forbidden:
            logger.info("DMs closed for user", extra={"target_user_id": user_id})
            return False
        except discord.HTTPException as exc:
            logger.warning(
                "Failed to send DM",
                extra={"target_user_id": user_id, "status": exc.status, "error": str(exc)},
            )
            return False
        return True

    async def get_capabilities(self, guild_id: int) -> Optional[BotCapabilities]:
        guild = self.bot.get_guild(guild_id)
        if guild is None or guild.me is None:
            return None
        permissions = guild.me.guild_permissions
        return BotCapabilities(
            manage_roles=permissions.manage_roles,
            view_channel=permissions.view_channel,
        )

    async def find_role(self, guild_id: int, name: str) -> Optional[RoleInfo]:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            return None
        wanted = name.lower()
        role = discord.utils.find(lambda r: r.name.lower() == wanted, guild.roles)
        return _role_info(role) if role is not None else None

    async def create_role(self, guild_id: int, name: str, colour: int) -> Optional[RoleInfo]:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            return None
        try:
            role = await guild.create_role(
                name=name,
                colour=discord.Colour(colour),
                permissions=discord.Permissions.none(),
                reason=f"{ROLE_REASON}: auto-created verified role",
            )
        except (discord.Forbidden, discord.HTTPException) as exc:
            logger.error(
                "Failed to create role",
                extra={"guild_id": guild_id, "role": name, "error": str(exc)},
            )
            return None
        return _role_info(role)

    async def get_bot_top_role(self, guild_id: int) -> Optional[RoleInfo]:
        guild = self.bot.get_guild(guild_id)
        if guild is None or guild.me is None:
            return None
        return _role_info(guild.me.top_role)

    async def member_has_role(self, guild_id: int, user_id: int, role_id: int) -> Optional[bool]:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            return None
        member = await self._get_member(guild, user_id)
        if member is None:
            return None
        return any(role.id == role_id for role in member.roles)

    async def add_role(self, guild_id: int, user_id: int, role_id: int) -> bool:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            return False
        role = guild.get_role(role_id)
        member = await self._get_member(guild, user_id)
        if role is None or member is None:
            return False
        try:
            await member.add_roles(role, reason=ROLE_REASON)
        except discord.Forbidden as exc:
            logger.error(
                "Missing permissions to add role",
                extra={"guild_id": guild_id, "role": role.name, "code": exc.code},
            )
            return False
        except discord.HTTPException as exc:
            logger.error(
                "Failed to add role",
                extra={"guild_id": guild_id, "role": role.name, "error": str(exc)},
            )
            return False
        return True

    async def role_hierarchy_report(self, guild_id: int) -> Optional[RoleHierarchyReport]:
        guild = self.bot.get_guild(guild_id)
        if guild is None or guild.me is None:
            return None
        top = guild.me.top_role
        entries = [
            RoleHierarchyEntry(
                name=role.name,
                position=role.position,
                is_bot_role=role == top,
                manageable=role.is_assignable(),
            )
            for role in sorted(guild.roles, key=lambda r: r.position, reverse=True)
        ]
        return RoleHierarchyReport(
            bot_top_role=top.name,
            bot_top_position=top.position,
            roles=entries,
        )
