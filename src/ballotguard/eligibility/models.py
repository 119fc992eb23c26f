"""SQLAlchemy models for voter eligibility grants."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ballotguard.common.models import Base, TimestampMixin, generate_uuid

GRANT_STATUSES = ("active", "suspended", "revoked")


class EligibilityGrantModel(Base, TimestampMixin):
    __tablename__ = "eligibility_grants"
    __table_args__ = (
        UniqueConstraint("voter_id", "election_id", name="uq_grant_voter_election"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    voter_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("voters.id"), nullable=False, index=True
    )
    election_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("elections.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), default="active", index=True)
    position_ids: Mapped[list] = mapped_column(JSON, default=list)

    granted_by: Mapped[str] = mapped_column(String(36), default="system")
    suspended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    suspension_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revocation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reactivated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reactivated_by: Mapped[str | None] = mapped_column(String(36), nullable=True)

    votes_cast: Mapped[int] = mapped_column(Integer, default=0)
    last_voted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def voting_progress(self) -> float:
        """Percentage of authorized positions already voted."""
        if not self.position_ids:
            return 0.0
        return round(min(self.votes_cast, len(self.position_ids)) / len(self.position_ids) * 100, 2)
