"""emailgate: Discord member verification by one-time email code."""

__version__ = "1.0.0"
