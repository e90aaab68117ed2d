from emailgate.ui.embeds import EmbedColor, EmbedFactory

__all__ = ["EmbedColor", "EmbedFactory"]
