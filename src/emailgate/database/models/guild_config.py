from __future__ import annotations

from typing import List

from sqlalchemy import JSON, BigInteger, Boolean, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from emailgate.core.database.base import Base, TimestampMixin

DEFAULT_ROLE_NAME = "Verified"


class GuildConfig(Base, TimestampMixin):
    """
    Per-server verification settings, created on the first admin command.

    - domains: allow-listed email domains (list with set semantics)
    - onjoin: DM new members a verification prompt when they join
    - role: name of the role granted on success
    """

    __tablename__ = "guild_configs"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    domains: Mapped[List[str]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=list,
    )
    onjoin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    role: Mapped[str] = mapped_column(String(100), nullable=False, default=DEFAULT_ROLE_NAME)

    def __repr__(self) -> str:
        return f"<GuildConfig guild={self.guild_id} domains={self.domains} onjoin={self.onjoin}>"
