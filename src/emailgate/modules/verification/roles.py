"""
Role Assignment Preflight

Checks everything that can make a role grant fail before calling the
platform, so failures are reported with a precise reason instead of an
opaque Discord 403:

1. The bot holds Manage Roles and View Channel in the guild.
2. The role exists (found case-insensitively, else created green with no
   permissions).
3. The member is still in the guild.
4. The bot's highest role sits strictly above the target role.

A member who already holds the role is a success without another add call.
`check_hierarchy` runs step 4 on its own before a session starts, so a member
is never mailed a code for a role the bot cannot grant.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from emailgate.core.logging.logger import get_logger
from emailgate.modules.shared.exceptions import (
    InsufficientPermissions,
    RoleAssignmentFailed,
    RoleCreationFailed,
    VerificationError,
)
from emailgate.modules.verification.platform import (
    ChatPlatform,
    RoleHierarchyReport,
    RoleInfo,
)

logger = get_logger(__name__)

VERIFIED_ROLE_COLOR = 0x00FF00


@dataclass(frozen=True)
class RoleGrantResult:
    role: RoleInfo
    created: bool = False
    already_held: bool = False


class RoleGranter:
    def __init__(self, platform: ChatPlatform, role_color: int = VERIFIED_ROLE_COLOR) -> None:
        self.platform = platform
        self.role_color = role_color

    async def grant(self, user_id: int, guild_id: int, role_name: str) -> RoleGrantResult:
        """
        Give `role_name` to the member.

        Raises
        ------
        InsufficientPermissions
            Bot lacks Manage Roles or View Channel, or cannot see the guild.
        RoleCreationFailed
            The role was missing and could not be created.
        RoleAssignmentFailed
            Member gone, hierarchy blocks the grant, or the add call failed.
        """
        capabilities = await self.platform.get_capabilities(guild_id)
        if capabilities is None:
            raise InsufficientPermissions(user_id, guild_id, ["guild_visible"])
        if not capabilities.sufficient:
            raise InsufficientPermissions(user_id, guild_id, capabilities.missing())

        created = False
        role = await self.platform.find_role(guild_id, role_name)
        if role is None:
            role = await self.platform.create_role(guild_id, role_name, self.role_color)
            if role is None:
                raise RoleCreationFailed(user_id, guild_id, role_name)
            created = True
            logger.info(
                "Created verified role",
                extra={"guild_id": guild_id, "role": role.name, "role_id": role.id},
            )

        has_role = await self.platform.member_has_role(guild_id, user_id, role.id)
        if has_role is None:
            raise RoleAssignmentFailed(user_id, guild_id, role.name, "member_not_found")
        if has_role:
            return RoleGrantResult(role=role, created=created, already_held=True)

        if not await self._outranks(guild_id, role):
            raise RoleAssignmentFailed(user_id, guild_id, role.name, "hierarchy")

        if not await self.platform.add_role(guild_id, user_id, role.id):
            raise RoleAssignmentFailed(user_id, guild_id, role.name, "add_failed")

        logger.info(
            "Verified role assigned",
            extra={"user_id": user_id, "guild_id": guild_id, "role": role.name},
        )
        return RoleGrantResult(role=role, created=created)

    async def assign_role(self, user_id: int, guild_id: int, role_name: str) -> bool:
        """Boolean form of `grant`; failures are logged."""
        try:
            await self.grant(user_id, guild_id, role_name)
        except VerificationError as exc:
            logger.warning("Role assignment failed", extra={"error": exc.to_dict()})
            return False
        return True

    async def check_hierarchy(self, user_id: int, guild_id: int, role_name: str) -> None:
        """
        Fail early when `role_name` exists at or above the bot's highest role.

        A role that does not exist yet passes: it is created below the bot.

        Raises
        ------
        InsufficientPermissions
            With `missing == ["role_hierarchy"]`.
        """
        role = await self.platform.find_role(guild_id, role_name)
        if role is None:
            return
        if not await self._outranks(guild_id, role):
            raise InsufficientPermissions(user_id, guild_id, ["role_hierarchy"])

    async def _outranks(self, guild_id: int, role: RoleInfo) -> bool:
        bot_top = await self.platform.get_bot_top_role(guild_id)
        if bot_top is not None and bot_top.position > role.position:
            return True
        logger.warning(
            "Bot role is not above the verified role",
            extra={
                "guild_id": guild_id,
                "role": role.name,
                "role_position": role.position,
                "bot_top_role": bot_top.name if bot_top else None,
                "bot_top_position": bot_top.position if bot_top else None,
            },
        )
        return False

    async def describe_hierarchy(self, guild_id: int) -> Optional[RoleHierarchyReport]:
        return await self.platform.role_hierarchy_report(guild_id)

    async def log_hierarchy(self, guild_id: int, reason: str) -> None:
        """Write the guild's role hierarchy to the log for operators."""
        try:
            report = await self.describe_hierarchy(guild_id)
        except Exception:
            logger.exception("Could not read role hierarchy", extra={"guild_id": guild_id})
            return
        if report is None:
            logger.warning(
                "Role hierarchy unavailable; guild not visible",
                extra={"guild_id": guild_id, "reason": reason},
            )
            return
        logger.warning(
            "Role hierarchy diagnostic",
            extra={"guild_id": guild_id, "reason": reason, **report.as_log_extra()},
        )
