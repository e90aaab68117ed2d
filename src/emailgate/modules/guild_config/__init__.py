from emailgate.modules.guild_config.service import GuildConfigService, GuildSettings

__all__ = ["GuildConfigService", "GuildSettings"]
