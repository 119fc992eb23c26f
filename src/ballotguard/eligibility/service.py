"""Eligibility service: who may vote on which positions of an election."""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ballotguard.common.clock import SystemClock
from ballotguard.common.config import BallotguardSettings
from ballotguard.common.exceptions import (
    BallotguardError,
    ElectionNotFoundError,
    GrantExistsError,
    GrantNotFoundError,
)
from ballotguard.common.security import RequestContext
from ballotguard.eligibility.models import EligibilityGrantModel
from ballotguard.elections.models import ElectionModel, PositionModel

logger = logging.getLogger(__name__)


@dataclass
class EligibilityCheck:
    """Outcome of an eligibility decision for one ballot."""
    ok: bool
    reason: str
    grant_id: Optional[str] = None
    voter_id: Optional[str] = None
    election_id: Optional[str] = None
    position_id: Optional[str] = None


class EligibilityService:
    """Grant records and the read-only eligibility check."""

    def __init__(self, settings: BallotguardSettings, audit_service=None, clock=None):
        self.settings = settings
        self.audit = audit_service
        self.clock = clock or SystemClock()

    async def get_grant(
        self, session: AsyncSession, voter_id: str, election_id: str,
    ) -> EligibilityGrantModel | None:
        result = await session.execute(
            select(EligibilityGrantModel)
            .where(EligibilityGrantModel.voter_id == voter_id)
            .where(EligibilityGrantModel.election_id == election_id)
        )
        return result.scalar_one_or_none()

    async def check(
        self,
        session: AsyncSession,
        voter_id: str,
        election_id: str,
        position_id: str,
        context: Optional[RequestContext] = None,
    ) -> EligibilityCheck:
        """Decide whether the voter may vote for ``position_id``.

        Makes no changes to the grant. Each failure writes one audit entry.
        """
        base = {"voter_id": voter_id, "election_id": election_id, "position_id": position_id}
        grant = await self.get_grant(session, voter_id, election_id)

        if grant is None:
            reason = "no_grant"
        elif grant.status != "active":
            reason = f"grant_{grant.status}"
        elif position_id not in (grant.position_ids or []):
            reason = "position_not_in_scope"
        else:
            return EligibilityCheck(ok=True, reason="ok", grant_id=grant.id, **base)

        if self.audit is not None:
            context = context or RequestContext()
            await self.audit.record(
                session,
                context.actor,
                "VOTER_ELIGIBILITY_FAILED",
                "eligibility_grant",
                dict(base, reason=reason),
                False,
                context.as_meta(),
                resource_id=grant.id if grant else None,
                election_id=election_id,
                position_id=position_id,
                error_message=reason,
                actor_role=context.actor_role,
            )
        return EligibilityCheck(
            ok=False, reason=reason, grant_id=grant.id if grant else None, **base,
        )

    # ── Administration ──

    async def grant(
        self,
        session: AsyncSession,
        voter_id: str,
        election_id: str,
        position_ids: list[str],
        granted_by: str = "system",
        context: Optional[RequestContext] = None,
    ) -> EligibilityGrantModel:
        if await session.get(ElectionModel, election_id) is None:
            raise ElectionNotFoundError()
        if await self.get_grant(session, voter_id, election_id) is not None:
            raise GrantExistsError()
        await self._require_positions(session, election_id, position_ids)

        grant = EligibilityGrantModel(
            voter_id=voter_id,
            election_id=election_id,
            position_ids=list(dict.fromkeys(position_ids)),
            granted_by=granted_by,
        )
        session.add(grant)
        await session.flush()
        await self._audit(
            session, granted_by, "ACCESS_GRANTED", grant, context,
            {"position_ids": grant.position_ids},
        )
        return grant

    async def add_position(
        self,
        session: AsyncSession,
        grant_id: str,
        position_id: str,
        by: str,
        context: Optional[RequestContext] = None,
    ) -> EligibilityGrantModel:
        grant = await self.require_grant(session, grant_id)
        await self._require_positions(session, grant.election_id, [position_id])
        if position_id not in grant.position_ids:
            grant.position_ids = [*grant.position_ids, position_id]
            await session.flush()
            await self._audit(
                session, by, "ACCESS_SCOPE_CHANGED", grant, context,
                {"added": position_id},
            )
        return grant

    async def remove_position(
        self,
        session: AsyncSession,
        grant_id: str,
        position_id: str,
        by: str,
        context: Optional[RequestContext] = None,
    ) -> EligibilityGrantModel:
        grant = await self.require_grant(session, grant_id)
        if position_id in grant.position_ids:
            grant.position_ids = [p for p in grant.position_ids if p != position_id]
            await session.flush()
            await self._audit(
                session, by, "ACCESS_SCOPE_CHANGED", grant, context,
                {"removed": position_id},
            )
        return grant

    async def suspend(
        self,
        session: AsyncSession,
        grant_id: str,
        by: str,
        reason: str = "",
        context: Optional[RequestContext] = None,
    ) -> EligibilityGrantModel:
        grant = await self.require_grant(session, grant_id)
        if grant.status == "revoked":
            raise BallotguardError("Revoked grants cannot be suspended", code="INVALID_TRANSITION")
        grant.status = "suspended"
        grant.suspended_at = self.clock.now()
        grant.suspension_reason = reason
        await session.flush()
        await self._audit(session, by, "ACCESS_SUSPENDED", grant, context, {"reason": reason})
        return grant

    async def revoke(
        self,
        session: AsyncSession,
        grant_id: str,
        by: str,
        reason: str = "",
        context: Optional[RequestContext] = None,
    ) -> EligibilityGrantModel:
        grant = await self.require_grant(session, grant_id)
        grant.status = "revoked"
        grant.revoked_at = self.clock.now()
        grant.revocation_reason = reason
        await session.flush()
        await self._audit(session, by, "ACCESS_REVOKED", grant, context, {"reason": reason})
        return grant

    async def reactivate(
        self,
        session: AsyncSession,
        grant_id: str,
        by: str,
        context: Optional[RequestContext] = None,
    ) -> EligibilityGrantModel:
        grant = await self.require_grant(session, grant_id)
        previous = grant.status
        grant.status = "active"
        grant.reactivated_at = self.clock.now()
        grant.reactivated_by = by
        await session.flush()
        await self._audit(
            session, by, "ACCESS_REACTIVATED", grant, context, {"previous_status": previous},
        )
        return grant

    async def record_vote(self, session: AsyncSession, grant_id: str) -> None:
        """Bump the grant's vote counters after a ballot is written."""
        await session.execute(
            update(EligibilityGrantModel)
            .where(EligibilityGrantModel.id == grant_id)
            .values(
                votes_cast=EligibilityGrantModel.votes_cast + 1,
                last_voted_at=self.clock.now(),
            )
            .execution_options(synchronize_session=False)
        )

    # ── Internal helpers ──

    async def require_grant(self, session: AsyncSession, grant_id: str) -> EligibilityGrantModel:
        grant = await session.get(EligibilityGrantModel, grant_id)
        if grant is None:
            raise GrantNotFoundError()
        return grant

    async def _require_positions(
        self, session: AsyncSession, election_id: str, position_ids: list[str],
    ) -> None:
        if not position_ids:
            return
        result = await session.execute(
            select(PositionModel.id)
            .where(PositionModel.election_id == election_id)
            .where(PositionModel.id.in_(position_ids))
        )
        found = set(result.scalars().all())
        missing = [p for p in position_ids if p not in found]
        if missing:
            raise BallotguardError(
                f"Positions not in election: {', '.join(missing)}", code="INVALID_POSITION",
            )

    async def _audit(
        self,
        session: AsyncSession,
        actor: str,
        action: str,
        grant: EligibilityGrantModel,
        context: Optional[RequestContext],
        details: dict[str, Any],
    ) -> None:
        if self.audit is None:
            return
        await self.audit.record(
            session,
            actor,
            action,
            "eligibility_grant",
            dict(details, voter_id=grant.voter_id),
            True,
            context.as_meta() if context else None,
            resource_id=grant.id,
            election_id=grant.election_id,
        )
