"""Vote recorder: exactly-once ballot persistence and post-cast transitions."""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ballotguard.common.clock import SystemClock
from ballotguard.common.config import BallotguardSettings
from ballotguard.common.database import insert_ignore
from ballotguard.common.exceptions import (
    DuplicateVoteError,
    InvalidCandidateError,
    InvalidTransitionError,
    VoteNotFoundError,
)
from ballotguard.common.models import generate_uuid
from ballotguard.common.security import RequestContext
from ballotguard.elections.models import CandidateModel, ElectionModel, PositionModel, VoterModel
from ballotguard.notifications.dispatcher import notify_quietly
from ballotguard.votes.authorization import BallotAuthorization, verify_authorization
from ballotguard.votes.models import VoteModel, VoteTrailEntryModel

logger = logging.getLogger(__name__)


def content_hash(
    election_id: str, voter_id: str, position_id: str, candidate_id: str, nonce: str,
) -> str:
    raw = f"{election_id}-{voter_id}-{position_id}-{candidate_id}-{nonce}"
    return hashlib.sha256(raw.encode()).hexdigest()


def receipt_hash(vote_id: str, vote_hash: str, issued_at: str) -> str:
    raw = f"{vote_id}-{vote_hash}-{issued_at}"
    return hashlib.sha256(raw.encode()).hexdigest()[:32].upper()


@dataclass
class TransitionResult:
    """Outcome of a vote state change: ``applied`` or ``noop``."""
    outcome: str
    vote: VoteModel

    @property
    def applied(self) -> bool:
        return self.outcome == "applied"


class VoteService:
    """Writes ballots under the (election, voter, position) constraint."""

    def __init__(
        self,
        settings: BallotguardSettings,
        secret_code_service,
        eligibility_service,
        audit_service=None,
        notifier=None,
        clock=None,
    ):
        self.settings = settings
        self.codes = secret_code_service
        self.eligibility = eligibility_service
        self.audit = audit_service
        self.notifier = notifier
        self.clock = clock or SystemClock()

    # ── Cast ──

    async def cast_vote(
        self,
        session: AsyncSession,
        authorization: BallotAuthorization,
        candidate_id: str,
        context: Optional[RequestContext] = None,
    ) -> VoteModel:
        """Persist one ballot.

        Raises DuplicateVoteError when a ballot for the same
        (election, voter, position) already exists, and
        InvalidCandidateError when the candidate does not stand for the
        position. Neither outcome marks the secret code as used.
        """
        verify_authorization(authorization, self.settings.secret_key)
        context = context or RequestContext(actor_id=authorization.voter_id)
        ballot = {
            "voter_id": authorization.voter_id,
            "election_id": authorization.election_id,
            "position_id": authorization.position_id,
            "candidate_id": candidate_id,
        }

        position = await session.get(PositionModel, authorization.position_id)
        candidate = await session.get(CandidateModel, candidate_id)
        if position is None or position.election_id != authorization.election_id:
            await self._audit_rejection(session, context, ballot, "position_not_in_election")
            raise InvalidCandidateError("Position does not belong to this election")
        if (
            candidate is None
            or candidate.position_id != position.id
            or candidate.status != "approved"
        ):
            await self._audit_rejection(session, context, ballot, "candidate_not_in_position")
            raise InvalidCandidateError()

        now = self.clock.now()
        vote_id = generate_uuid()
        nonce = secrets.token_hex(16)
        vote_hash = content_hash(
            authorization.election_id, authorization.voter_id,
            authorization.position_id, candidate_id, nonce,
        )
        election = await session.get(ElectionModel, authorization.election_id)

        written = await insert_ignore(
            session,
            VoteModel.__table__,
            {
                "id": vote_id,
                "election_id": authorization.election_id,
                "position_id": authorization.position_id,
                "candidate_id": candidate_id,
                "voter_id": authorization.voter_id,
                "secret_code_id": authorization.secret_code_id,
                "grant_id": authorization.grant_id,
                "session_token": secrets.token_urlsafe(32),
                "vote_hash": vote_hash,
                "nonce": nonce,
                "receipt_hash": receipt_hash(vote_id, vote_hash, now.isoformat()),
                "election_phase": election.current_phase if election else "voting",
                "status": "cast",
                "verified": False,
                "dispute_status": "none",
                "ip_address": context.ip_address,
                "user_agent": context.user_agent,
                "device_fingerprint": context.device_fingerprint,
                "created_at": now,
                "updated_at": now,
            },
        )
        if not written:
            await self._audit_rejection(session, context, ballot, "duplicate_vote")
            raise DuplicateVoteError()

        self._append_trail(session, vote_id, "VOTE_CAST", context.actor, {"candidate_id": candidate_id})
        await self.codes.record_consumption(
            session, authorization.secret_code_id, authorization.position_id,
            candidate_id, vote_id,
        )
        await self.eligibility.record_vote(session, authorization.grant_id)
        await self._audit_vote(session, context.actor, "VOTE_CAST", vote_id, ballot, context)

        if election is not None and not election.require_voter_verification:
            await self.verify(session, vote_id, "system", method="automatic", context=context)

        vote = await self.get_vote(session, vote_id)
        await self._notify_cast(session, vote, position)
        return vote

    # ── Read ──

    async def get_vote(self, session: AsyncSession, vote_id: str) -> VoteModel:
        result = await session.execute(
            select(VoteModel)
            .where(VoteModel.id == vote_id)
            .execution_options(populate_existing=True)
        )
        vote = result.scalar_one_or_none()
        if vote is None:
            raise VoteNotFoundError()
        return vote

    async def count_for_ballot(
        self, session: AsyncSession, election_id: str, voter_id: str, position_id: str,
    ) -> int:
        result = await session.execute(
            select(VoteModel.id)
            .where(VoteModel.election_id == election_id)
            .where(VoteModel.voter_id == voter_id)
            .where(VoteModel.position_id == position_id)
        )
        return len(result.scalars().all())

    @staticmethod
    def verify_integrity(vote: VoteModel) -> bool:
        """Recompute the content hash from the stored ballot fields."""
        expected = content_hash(
            vote.election_id, vote.voter_id, vote.position_id, vote.candidate_id, vote.nonce,
        )
        return secrets.compare_digest(expected, vote.vote_hash)

    # ── Transitions ──

    async def verify(
        self,
        session: AsyncSession,
        vote_id: str,
        by: str,
        method: str = "manual",
        context: Optional[RequestContext] = None,
    ) -> TransitionResult:
        now = self.clock.now()
        return await self._transition(
            session, vote_id,
            allowed_from=("cast",),
            values={
                "status": "verified",
                "verified": True,
                "verified_by": by,
                "verified_at": now,
                "verification_method": method,
            },
            is_noop=lambda v: v.verified,
            action="VOTE_VERIFIED",
            actor=by,
            detail={"method": method},
            context=context,
        )

    async def count(
        self,
        session: AsyncSession,
        vote_id: str,
        by: str,
        context: Optional[RequestContext] = None,
    ) -> TransitionResult:
        return await self._transition(
            session, vote_id,
            allowed_from=("cast", "verified"),
            values={"status": "counted", "counted_at": self.clock.now()},
            is_noop=lambda v: v.status == "counted",
            action="VOTE_COUNTED",
            actor=by,
            detail={},
            context=context,
        )

    async def dispute(
        self,
        session: AsyncSession,
        vote_id: str,
        by: str,
        reason: str,
        context: Optional[RequestContext] = None,
    ) -> TransitionResult:
        return await self._transition(
            session, vote_id,
            allowed_from=("cast", "verified", "counted"),
            values={
                "status_before_dispute": VoteModel.status,
                "status": "disputed",
                "dispute_status": "pending",
                "dispute_reason": reason,
                "dispute_submitted_by": by,
                "dispute_submitted_at": self.clock.now(),
            },
            is_noop=lambda v: v.dispute_status == "pending",
            action="VOTE_DISPUTED",
            actor=by,
            detail={"reason": reason},
            context=context,
        )

    async def resolve_dispute(
        self,
        session: AsyncSession,
        vote_id: str,
        by: str,
        resolution: str,
        uphold: bool = False,
        context: Optional[RequestContext] = None,
    ) -> TransitionResult:
        """Close a pending dispute.

        An upheld dispute invalidates the ballot; a rejected one restores
        the status the ballot held when the dispute was raised.
        """
        values: dict[str, Any] = {
            "dispute_status": "resolved" if uphold else "rejected",
            "dispute_resolution": resolution,
            "dispute_resolved_by": by,
            "dispute_resolved_at": self.clock.now(),
        }
        if uphold:
            values["status"] = "invalid"
            values["invalidation_reason"] = resolution
        else:
            values["status"] = VoteModel.status_before_dispute
        return await self._transition(
            session, vote_id,
            allowed_from=("disputed",),
            values=values,
            is_noop=lambda v: v.dispute_status in ("resolved", "rejected"),
            action="VOTE_DISPUTE_RESOLVED",
            actor=by,
            detail={"resolution": resolution, "upheld": uphold},
            context=context,
            extra_where=VoteModel.dispute_status == "pending",
        )

    async def invalidate(
        self,
        session: AsyncSession,
        vote_id: str,
        by: str,
        reason: str,
        context: Optional[RequestContext] = None,
    ) -> TransitionResult:
        return await self._transition(
            session, vote_id,
            allowed_from=("cast", "verified", "counted", "disputed"),
            values={"status": "invalid", "invalidation_reason": reason},
            is_noop=lambda v: v.status == "invalid",
            action="VOTE_INVALIDATED",
            actor=by,
            detail={"reason": reason},
            context=context,
        )

    async def _transition(
        self,
        session: AsyncSession,
        vote_id: str,
        allowed_from: tuple[str, ...],
        values: dict[str, Any],
        is_noop,
        action: str,
        actor: str,
        detail: dict[str, Any],
        context: Optional[RequestContext],
        extra_where=None,
    ) -> TransitionResult:
        # Conditional UPDATE: concurrent callers race on the WHERE clause and
        # only one sees rowcount == 1.
        stmt = (
            update(VoteModel)
            .where(VoteModel.id == vote_id)
            .where(VoteModel.status.in_(allowed_from))
        )
        if extra_where is not None:
            stmt = stmt.where(extra_where)
        values = dict(values, updated_at=self.clock.now())
        result = await session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            vote = await self.get_vote(session, vote_id)
            if is_noop(vote):
                return TransitionResult("noop", vote)
            raise InvalidTransitionError(
                f"Cannot apply {action} to a vote in status '{vote.status}'"
            )

        self._append_trail(session, vote_id, action, actor, detail)
        vote = await self.get_vote(session, vote_id)
        await self._audit_vote(
            session, actor, action, vote_id,
            dict(detail, status=vote.status), context,
            election_id=vote.election_id, position_id=vote.position_id,
        )
        return TransitionResult("applied", vote)

    # ── Internal helpers ──

    def _append_trail(
        self,
        session: AsyncSession,
        vote_id: str,
        action: str,
        actor: str,
        detail: dict[str, Any],
    ) -> None:
        session.add(VoteTrailEntryModel(
            vote_id=vote_id,
            action=action,
            actor=actor,
            detail=detail,
            created_at=self.clock.now(),
        ))

    async def _notify_cast(
        self, session: AsyncSession, vote: VoteModel, position: PositionModel,
    ) -> None:
        voter = await session.get(VoterModel, vote.voter_id)
        if voter is None:
            return
        await notify_quietly(
            self.notifier,
            voter.email,
            "vote_confirmation",
            {
                "voter_name": voter.name,
                "position_title": position.title,
                "receipt_number": vote.receipt_number,
                "receipt_hash": vote.receipt_hash,
            },
        )

    async def _audit_rejection(
        self,
        session: AsyncSession,
        context: RequestContext,
        ballot: dict[str, Any],
        reason: str,
    ) -> None:
        if self.audit is None:
            return
        await self.audit.record(
            session,
            context.actor,
            "VOTE_REJECTED",
            "vote",
            dict(ballot, reason=reason),
            False,
            context.as_meta(),
            election_id=ballot["election_id"],
            position_id=ballot["position_id"],
            error_message=reason,
            actor_role=context.actor_role,
        )

    async def _audit_vote(
        self,
        session: AsyncSession,
        actor: str,
        action: str,
        vote_id: str,
        details: dict[str, Any],
        context: Optional[RequestContext],
        election_id: Optional[str] = None,
        position_id: Optional[str] = None,
    ) -> None:
        if self.audit is None:
            return
        await self.audit.record(
            session,
            actor,
            action,
            "vote",
            details,
            True,
            context.as_meta() if context else None,
            resource_id=vote_id,
            election_id=election_id or details.get("election_id"),
            position_id=position_id or details.get("position_id"),
            actor_role=context.actor_role if context else None,
        )
