"""SQLAlchemy models for elections, positions, candidates and voters."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ballotguard.common.models import Base, TimestampMixin, generate_uuid

ELECTION_STATUSES = ("draft", "scheduled", "active", "completed", "cancelled")
PHASES = ("registration", "nomination", "campaign", "voting", "results", "completed")
CANDIDATE_STATUSES = ("pending", "approved", "rejected", "withdrawn")


class ElectionModel(Base, TimestampMixin):
    __tablename__ = "elections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(20), default="draft", index=True)
    current_phase: Mapped[str] = mapped_column(String(20), default="registration", index=True)

    registration_deadline: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    nomination_deadline: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    results_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    require_voter_verification: Mapped[bool] = mapped_column(Boolean, default=False)
    provisional_results_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    provisional_results_sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_reconciled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    positions: Mapped[list["PositionModel"]] = relationship(
        back_populates="election", lazy="selectin", order_by="PositionModel.order",
    )


class PositionModel(Base, TimestampMixin):
    __tablename__ = "positions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    election_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("elections.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0)

    election: Mapped["ElectionModel"] = relationship(back_populates="positions")
    candidates: Mapped[list["CandidateModel"]] = relationship(
        back_populates="position", lazy="selectin",
    )


class CandidateModel(Base, TimestampMixin):
    __tablename__ = "candidates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    position_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("positions.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), default="")
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)

    position: Mapped["PositionModel"] = relationship(back_populates="candidates")


class VoterModel(Base, TimestampMixin):
    __tablename__ = "voters"
    __table_args__ = (
        UniqueConstraint("voter_number", name="uq_voter_number"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    voter_number: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), default="")
