"""SQLAlchemy models for voter secret codes."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ballotguard.common.models import Base, TimestampMixin, generate_uuid, utcnow


class SecretCodeModel(Base, TimestampMixin):
    __tablename__ = "secret_codes"
    __table_args__ = (
        UniqueConstraint("voter_id", "election_id", name="uq_secret_code_voter_election"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    voter_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("voters.id"), nullable=False, index=True
    )
    election_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("elections.id"), nullable=False, index=True
    )
    code_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    salt: Mapped[str] = mapped_column(String(32), nullable=False)

    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    locked_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    issued_by: Mapped[str] = mapped_column(String(36), default="system")
    deactivated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    deactivated_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    deactivation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reactivated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reactivated_by: Mapped[str | None] = mapped_column(String(36), nullable=True)

    total_uses: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    uses: Mapped[list["SecretCodeUseModel"]] = relationship(
        back_populates="secret_code", lazy="selectin",
    )

    @property
    def consumed_positions(self) -> set[str]:
        return {u.position_id for u in self.uses}


class SecretCodeUseModel(Base):
    """A position already voted with a secret code."""

    __tablename__ = "secret_code_uses"
    __table_args__ = (
        UniqueConstraint("secret_code_id", "position_id", name="uq_secret_code_use_position"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    secret_code_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("secret_codes.id"), nullable=False, index=True
    )
    position_id: Mapped[str] = mapped_column(String(36), nullable=False)
    candidate_id: Mapped[str] = mapped_column(String(36), nullable=False)
    vote_id: Mapped[str] = mapped_column(String(36), nullable=False)
    voted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    secret_code: Mapped["SecretCodeModel"] = relationship(back_populates="uses")
