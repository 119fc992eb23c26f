"""SQLAlchemy models for ballots and their audit trail."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ballotguard.common.models import Base, TimestampMixin, generate_uuid, utcnow

VOTE_STATUSES = ("cast", "verified", "counted", "disputed", "invalid")
COUNTABLE_STATUSES = ("cast", "verified", "counted")
DISPUTE_STATUSES = ("none", "pending", "resolved", "rejected")


class VoteModel(Base, TimestampMixin):
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint(
            "election_id", "voter_id", "position_id", name="uq_vote_election_voter_position"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    election_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("elections.id"), nullable=False, index=True
    )
    position_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("positions.id"), nullable=False, index=True
    )
    candidate_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("candidates.id"), nullable=False, index=True
    )
    voter_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("voters.id"), nullable=False, index=True
    )
    secret_code_id: Mapped[str] = mapped_column(String(36), nullable=False)
    grant_id: Mapped[str] = mapped_column(String(36), nullable=False)

    session_token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    vote_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    nonce: Mapped[str] = mapped_column(String(32), nullable=False)
    receipt_hash: Mapped[str] = mapped_column(String(32), nullable=False)
    election_phase: Mapped[str] = mapped_column(String(20), default="voting")

    status: Mapped[str] = mapped_column(String(20), default="cast", index=True)
    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    verified_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verification_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    counted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    dispute_status: Mapped[str] = mapped_column(String(20), default="none", index=True)
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    dispute_submitted_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    dispute_submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    dispute_resolution: Mapped[str | None] = mapped_column(Text, nullable=True)
    dispute_resolved_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    dispute_resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    status_before_dispute: Mapped[str | None] = mapped_column(String(20), nullable=True)
    invalidation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    device_fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True)

    trail: Mapped[list["VoteTrailEntryModel"]] = relationship(
        back_populates="vote", lazy="selectin", order_by="VoteTrailEntryModel.created_at",
    )

    @property
    def receipt_number(self) -> str:
        return f"VOTE-{self.id[:8].upper()}"


class VoteTrailEntryModel(Base):
    """One append-only entry in a ballot's own history."""

    __tablename__ = "vote_audit_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    vote_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("votes.id"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor: Mapped[str] = mapped_column(String(36), nullable=False)
    detail: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    vote: Mapped["VoteModel"] = relationship(back_populates="trail")
