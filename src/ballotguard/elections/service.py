"""Election, position, candidate and voter records."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ballotguard.common.exceptions import BallotguardError, ElectionNotFoundError
from ballotguard.elections.models import (
    CANDIDATE_STATUSES,
    ELECTION_STATUSES,
    CandidateModel,
    ElectionModel,
    PositionModel,
    VoterModel,
)

REMINDER_STATUSES = ("draft", "scheduled", "active")


def check_boundaries(
    start_at: datetime,
    end_at: datetime,
    registration_deadline: Optional[datetime] = None,
    nomination_deadline: Optional[datetime] = None,
    results_end: Optional[datetime] = None,
) -> None:
    """Reject phase boundaries that are out of order.

    Registration closes no later than nomination, both close no later than
    voting opens, and the results window cannot end before voting does.
    """
    if end_at <= start_at:
        raise BallotguardError("end_at must be after start_at", code="INVALID_WINDOW")
    if registration_deadline and nomination_deadline and registration_deadline > nomination_deadline:
        raise BallotguardError(
            "registration_deadline must not be after nomination_deadline",
            code="INVALID_WINDOW",
        )
    for name, deadline in (
        ("registration_deadline", registration_deadline),
        ("nomination_deadline", nomination_deadline),
    ):
        if deadline and deadline > start_at:
            raise BallotguardError(f"{name} must not be after start_at", code="INVALID_WINDOW")
    if results_end and results_end < end_at:
        raise BallotguardError("results_end must not be before end_at", code="INVALID_WINDOW")


class ElectionService:
    """Thin data access for the records the voting core consumes."""

    async def create_election(
        self,
        session: AsyncSession,
        title: str,
        start_at: datetime,
        end_at: datetime,
        status: str = "draft",
        registration_deadline: Optional[datetime] = None,
        nomination_deadline: Optional[datetime] = None,
        results_end: Optional[datetime] = None,
        require_voter_verification: bool = False,
        description: str = "",
    ) -> ElectionModel:
        check_boundaries(
            start_at, end_at, registration_deadline, nomination_deadline, results_end,
        )
        if status not in ELECTION_STATUSES:
            raise BallotguardError(f"Unknown status '{status}'", code="INVALID_STATUS")
        election = ElectionModel(
            title=title,
            description=description,
            status=status,
            start_at=start_at,
            end_at=end_at,
            registration_deadline=registration_deadline,
            nomination_deadline=nomination_deadline,
            results_end=results_end,
            require_voter_verification=require_voter_verification,
        )
        session.add(election)
        await session.flush()
        return election

    async def add_position(
        self, session: AsyncSession, election_id: str, title: str, order: int = 0,
    ) -> PositionModel:
        await self.require_election(session, election_id)
        position = PositionModel(election_id=election_id, title=title, order=order)
        session.add(position)
        await session.flush()
        return position

    async def add_candidate(
        self,
        session: AsyncSession,
        position_id: str,
        name: str,
        email: str = "",
        status: str = "approved",
    ) -> CandidateModel:
        if status not in CANDIDATE_STATUSES:
            raise BallotguardError(f"Unknown status '{status}'", code="INVALID_STATUS")
        if await self.get_position(session, position_id) is None:
            raise BallotguardError("Position not found", code="NOT_FOUND")
        candidate = CandidateModel(
            position_id=position_id, name=name, email=email, status=status,
        )
        session.add(candidate)
        await session.flush()
        return candidate

    async def register_voter(
        self, session: AsyncSession, voter_number: str, name: str, email: str = "",
    ) -> VoterModel:
        voter = VoterModel(voter_number=voter_number, name=name, email=email)
        session.add(voter)
        await session.flush()
        return voter

    # ── Lookups ──

    async def get_election(
        self, session: AsyncSession, election_id: str,
    ) -> ElectionModel | None:
        return await session.get(ElectionModel, election_id)

    async def require_election(
        self, session: AsyncSession, election_id: str,
    ) -> ElectionModel:
        election = await self.get_election(session, election_id)
        if election is None:
            raise ElectionNotFoundError()
        return election

    async def get_position(
        self, session: AsyncSession, position_id: str,
    ) -> PositionModel | None:
        return await session.get(PositionModel, position_id)

    async def get_candidate(
        self, session: AsyncSession, candidate_id: str,
    ) -> CandidateModel | None:
        return await session.get(CandidateModel, candidate_id)

    async def get_voter(
        self, session: AsyncSession, voter_id: str,
    ) -> VoterModel | None:
        return await session.get(VoterModel, voter_id)

    async def list_pending_elections(self, session: AsyncSession) -> list[str]:
        """Ids of elections the scheduler still has work for."""
        result = await session.execute(
            select(ElectionModel.id)
            .where(ElectionModel.status != "cancelled")
            .where(ElectionModel.current_phase != "completed")
            .order_by(ElectionModel.start_at.asc())
        )
        return list(result.scalars().all())

    async def list_upcoming_deadlines(
        self, session: AsyncSession, since: datetime, until: datetime,
    ) -> list[str]:
        """Ids of live elections with any boundary in ``[since, until)``."""
        boundaries = (
            ElectionModel.registration_deadline,
            ElectionModel.nomination_deadline,
            ElectionModel.start_at,
            ElectionModel.end_at,
        )
        result = await session.execute(
            select(ElectionModel.id)
            .where(ElectionModel.status.in_(REMINDER_STATUSES))
            .where(or_(*[(b >= since) & (b < until) for b in boundaries]))
            .order_by(ElectionModel.start_at.asc())
        )
        return list(result.scalars().all())

    async def reminder_recipients(
        self, session: AsyncSession, election_id: str, kind: str,
    ) -> list[tuple[str, str]]:
        """(name, email) pairs to remind about one upcoming boundary.

        registration: voters on the roll without a grant for the election.
        nomination: candidates still awaiting approval.
        campaign_end: approved candidates.
        voting_start: voters holding an active grant.
        voting_end: active grant holders with positions left to vote.
        """
        from ballotguard.eligibility.models import EligibilityGrantModel as Grant

        if kind in ("nomination", "campaign_end"):
            statuses = ("pending",) if kind == "nomination" else ("approved",)
            result = await session.execute(
                select(CandidateModel.name, CandidateModel.email)
                .join(PositionModel, CandidateModel.position_id == PositionModel.id)
                .where(PositionModel.election_id == election_id)
                .where(CandidateModel.status.in_(statuses))
                .order_by(CandidateModel.name)
            )
            rows = result.all()
        elif kind == "registration":
            granted = (
                select(Grant.id)
                .where(Grant.voter_id == VoterModel.id)
                .where(Grant.election_id == election_id)
            )
            result = await session.execute(
                select(VoterModel.name, VoterModel.email)
                .where(~granted.exists())
                .order_by(VoterModel.voter_number)
            )
            rows = result.all()
        elif kind in ("voting_start", "voting_end"):
            result = await session.execute(
                select(VoterModel.name, VoterModel.email, Grant.votes_cast, Grant.position_ids)
                .join(Grant, Grant.voter_id == VoterModel.id)
                .where(Grant.election_id == election_id)
                .where(Grant.status == "active")
                .order_by(VoterModel.voter_number)
            )
            rows = [
                (name, email)
                for name, email, votes_cast, position_ids in result.all()
                if kind == "voting_start" or votes_cast < len(position_ids or [])
            ]
        else:
            raise ValueError(f"Unknown reminder kind '{kind}'")
        return [(name, email) for name, email in rows if email]

    async def provisional_tally(
        self, session: AsyncSession, election_id: str,
    ) -> list[dict[str, Any]]:
        """Per-candidate vote counts for approved candidates.

        Only ballots in cast/verified/counted state are counted.
        """
        from ballotguard.votes.models import COUNTABLE_STATUSES, VoteModel

        candidates = await session.execute(
            select(CandidateModel, PositionModel)
            .join(PositionModel, CandidateModel.position_id == PositionModel.id)
            .where(PositionModel.election_id == election_id)
            .where(CandidateModel.status == "approved")
            .order_by(PositionModel.order, CandidateModel.name)
        )
        counts_result = await session.execute(
            select(VoteModel.candidate_id, func.count(VoteModel.id))
            .where(VoteModel.election_id == election_id)
            .where(VoteModel.status.in_(COUNTABLE_STATUSES))
            .group_by(VoteModel.candidate_id)
        )
        counts = dict(counts_result.all())

        rows = [(c, p) for c, p in candidates.all()]
        totals: dict[str, int] = {}
        for candidate, position in rows:
            totals[position.id] = totals.get(position.id, 0) + counts.get(candidate.id, 0)

        tally = []
        for candidate, position in rows:
            votes = counts.get(candidate.id, 0)
            total = totals[position.id]
            tally.append({
                "candidate_id": candidate.id,
                "candidate_name": candidate.name,
                "candidate_email": candidate.email,
                "position_id": position.id,
                "position_title": position.title,
                "vote_count": votes,
                "total_votes": total,
                "percentage": round(votes / total * 100, 2) if total else 0.0,
            })
        return tally
