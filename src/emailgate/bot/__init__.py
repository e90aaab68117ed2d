"""Discord surface: bot class, platform adapter, cog base and loader."""
