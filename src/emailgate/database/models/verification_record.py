from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from emailgate.core.database.base import Base, CreatedAtMixin, IdMixin


class VerificationRecord(Base, IdMixin, CreatedAtMixin):
    """
    One issued verification code.

    Schema-only model:
    - user_id / guild_id: Discord snowflakes of the member and the server
    - email: address the code was mailed to
    - code: six digit string, leading zeros preserved
    - verified: set once the member replied with the code
    - created_at: issue time; rows older than the TTL are treated as absent
    """

    __tablename__ = "verification_records"
    __table_args__ = (
        Index("ix_verification_records_user_guild", "user_id", "guild_id"),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return (
            f"<VerificationRecord id={self.id} user={self.user_id} "
            f"guild={self.guild_id} verified={self.verified}>"
        )
