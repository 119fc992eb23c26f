"""Cast-vote pipeline: authenticate, check eligibility, record."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ballotguard.common.exceptions import (
    AlreadyVotedError,
    BallotguardError,
    ElectionClosedError,
    InvalidSecretCodeError,
    MissingFieldsError,
    NotEligibleError,
    SecretCodeLockedError,
)
from ballotguard.common.security import RequestContext
from ballotguard.elections.models import ElectionModel
from ballotguard.elections.phases import is_open_for_voting
from ballotguard.votes.authorization import authorize_ballot
from ballotguard.votes.models import VoteModel

logger = logging.getLogger(__name__)

_CODE_FAILURES = {
    "not_found": InvalidSecretCodeError,
    "deactivated": InvalidSecretCodeError,
    "invalid_code": InvalidSecretCodeError,
    "locked": SecretCodeLockedError,
    "already_voted": AlreadyVotedError,
}

REQUIRED_FIELDS = ("voter_id", "election_id", "position_id", "candidate_id", "secret_code")


@dataclass
class CastOutcome:
    success: bool
    code: str
    message: str
    vote: Optional[VoteModel] = None
    status_code: int = 200


class VotingService:
    """Runs one ballot through every check, in order.

    Expected failures come back as a :class:`CastOutcome` instead of an
    exception so the audit entries written along the way are committed
    with the caller's session.
    """

    def __init__(
        self,
        secret_code_service,
        eligibility_service,
        vote_service,
        guard=None,
        clock=None,
    ):
        self.codes = secret_code_service
        self.eligibility = eligibility_service
        self.votes = vote_service
        self.guard = guard
        self.clock = clock or vote_service.clock

    async def cast(
        self,
        session: AsyncSession,
        voter_id: str,
        election_id: str,
        position_id: str,
        candidate_id: str,
        secret_code: str,
        context: Optional[RequestContext] = None,
    ) -> CastOutcome:
        context = context or RequestContext(actor_id=voter_id)
        try:
            vote = await self._cast(
                session, voter_id, election_id, position_id, candidate_id,
                secret_code, context,
            )
        except BallotguardError as e:
            logger.info(
                "Ballot rejected: %s", e.code,
                extra={"context": {"election_id": election_id, "position_id": position_id}},
            )
            return CastOutcome(False, e.code, e.message, status_code=e.status_code)
        return CastOutcome(True, "OK", "Vote recorded", vote=vote)

    async def _cast(
        self,
        session: AsyncSession,
        voter_id: str,
        election_id: str,
        position_id: str,
        candidate_id: str,
        secret_code: str,
        context: RequestContext,
    ) -> VoteModel:
        fields = {
            "voter_id": voter_id,
            "election_id": election_id,
            "position_id": position_id,
            "candidate_id": candidate_id,
            "secret_code": secret_code,
        }
        missing = [name for name in REQUIRED_FIELDS if not (fields[name] or "").strip()]
        if missing:
            raise MissingFieldsError(f"Missing required fields: {', '.join(missing)}")

        election = await session.get(ElectionModel, election_id)
        if election is None or not is_open_for_voting(election, self.clock.now()):
            raise ElectionClosedError()

        code_check = await self.codes.validate(
            session, voter_id, election_id, position_id, secret_code, context,
        )
        if not code_check.ok:
            if code_check.reason in ("invalid_code", "locked", "not_found") and self.guard:
                await self.guard.record_failed_attempt(session, context)
            raise _CODE_FAILURES[code_check.reason]()

        eligibility = await self.eligibility.check(
            session, voter_id, election_id, position_id, context,
        )
        if not eligibility.ok:
            raise NotEligibleError()

        authorization = authorize_ballot(
            code_check, eligibility, self.votes.settings.secret_key,
        )
        return await self.votes.cast_vote(session, authorization, candidate_id, context)
