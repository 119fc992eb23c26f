"""Secret code service: issue, validate with lockout, consume, administer."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ballotguard.common.clock import SystemClock, ensure_utc
from ballotguard.common.config import BallotguardSettings
from ballotguard.common.database import insert_ignore
from ballotguard.common.exceptions import (
    BallotguardError,
    ElectionNotFoundError,
    InvalidCodeFormatError,
    SecretCodeExistsError,
    SecretCodeNotFoundError,
)
from ballotguard.common.models import generate_uuid
from ballotguard.common.security import RequestContext
from ballotguard.elections.models import ElectionModel, VoterModel
from ballotguard.notifications.dispatcher import notify_quietly
from ballotguard.secret_codes.generator import (
    generate_code,
    generate_salt,
    hash_code,
    normalize_code,
    validate_format,
    verify_code,
)
from ballotguard.secret_codes.models import SecretCodeModel, SecretCodeUseModel

logger = logging.getLogger(__name__)


@dataclass
class CodeCheck:
    """Outcome of one secret code validation."""
    ok: bool
    reason: str
    secret_code_id: Optional[str] = None
    voter_id: Optional[str] = None
    election_id: Optional[str] = None
    position_id: Optional[str] = None
    attempts_remaining: int = 0
    locked_until: Optional[datetime] = None


class SecretCodeService:
    """Per-voter, per-election secret codes with bounded retry."""

    def __init__(
        self,
        settings: BallotguardSettings,
        audit_service=None,
        notifier=None,
        clock=None,
    ):
        self.settings = settings
        self.audit = audit_service
        self.notifier = notifier
        self.clock = clock or SystemClock()

    # ── Issue / administer ──

    async def issue(
        self,
        session: AsyncSession,
        voter_id: str,
        election_id: str,
        code: Optional[str] = None,
        issued_by: str = "system",
        context: Optional[RequestContext] = None,
    ) -> tuple[SecretCodeModel, str]:
        """Create the voter's code for an election.

        Returns the record and the plaintext code; the plaintext is not
        stored and cannot be recovered later.
        """
        if await session.get(ElectionModel, election_id) is None:
            raise ElectionNotFoundError()
        if await session.get(VoterModel, voter_id) is None:
            raise BallotguardError("Voter not found", code="NOT_FOUND")
        if code is not None and not validate_format(code):
            raise InvalidCodeFormatError()
        if await self.get_code(session, voter_id, election_id) is not None:
            raise SecretCodeExistsError()

        plaintext = normalize_code(code) if code else generate_code()
        salt = generate_salt()
        record = SecretCodeModel(
            voter_id=voter_id,
            election_id=election_id,
            code_hash=hash_code(plaintext, salt, self.settings.code_pepper),
            salt=salt,
            issued_by=issued_by,
        )
        session.add(record)
        await session.flush()

        await self._audit(
            session, issued_by, "SECRET_CODE_GENERATED", record, True, context,
            details={"voter_id": voter_id},
        )
        return record, plaintext

    async def get_code(
        self, session: AsyncSession, voter_id: str, election_id: str,
    ) -> SecretCodeModel | None:
        result = await session.execute(
            select(SecretCodeModel)
            .where(SecretCodeModel.voter_id == voter_id)
            .where(SecretCodeModel.election_id == election_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _require(self, session: AsyncSession, secret_code_id: str) -> SecretCodeModel:
        record = await session.get(SecretCodeModel, secret_code_id)
        if record is None:
            raise SecretCodeNotFoundError()
        return record

    async def deactivate(
        self,
        session: AsyncSession,
        secret_code_id: str,
        by: str,
        reason: str = "",
        context: Optional[RequestContext] = None,
    ) -> SecretCodeModel:
        record = await self._require(session, secret_code_id)
        if record.is_active:
            record.is_active = False
            record.deactivated_at = self.clock.now()
            record.deactivated_by = by
            record.deactivation_reason = reason
            await session.flush()
            await self._audit(
                session, by, "SECRET_CODE_DEACTIVATED", record, True, context,
                details={"reason": reason},
            )
        return record

    async def reactivate(
        self,
        session: AsyncSession,
        secret_code_id: str,
        by: str,
        context: Optional[RequestContext] = None,
    ) -> SecretCodeModel:
        """Re-enable a code, clearing its attempt counter and any lock."""
        record = await self._require(session, secret_code_id)
        record.is_active = True
        record.attempts = 0
        record.is_locked = False
        record.locked_until = None
        record.reactivated_at = self.clock.now()
        record.reactivated_by = by
        await session.flush()
        await self._audit(session, by, "SECRET_CODE_REACTIVATED", record, True, context)
        return record

    async def statistics(self, session: AsyncSession, election_id: str) -> dict[str, Any]:
        row = (
            await session.execute(
                select(
                    func.count(SecretCodeModel.id),
                    func.count(SecretCodeModel.id).filter(SecretCodeModel.is_active.is_(True)),
                    func.count(SecretCodeModel.id).filter(SecretCodeModel.is_locked.is_(True)),
                    func.coalesce(func.sum(SecretCodeModel.total_uses), 0),
                ).where(SecretCodeModel.election_id == election_id)
            )
        ).one()
        total, active, locked, uses = row
        return {
            "total_codes": total,
            "active_codes": active,
            "locked_codes": locked,
            "total_uses": uses,
            "avg_uses": round(uses / total, 2) if total else 0.0,
        }

    # ── Validate ──

    async def validate(
        self,
        session: AsyncSession,
        voter_id: str,
        election_id: str,
        position_id: str,
        submitted_code: str,
        context: Optional[RequestContext] = None,
    ) -> CodeCheck:
        """Check a submitted code for one ballot.

        Writes exactly one audit entry per call. Consumption of the position
        is not recorded here; see :meth:`record_consumption`.
        """
        context = context or RequestContext()
        record = await self.get_code(session, voter_id, election_id)
        base = {"voter_id": voter_id, "election_id": election_id, "position_id": position_id}

        if record is None:
            await self._audit_failure(session, context, None, base, "not_found")
            return CodeCheck(ok=False, reason="not_found", **base)

        base_check = dict(base, secret_code_id=record.id)
        if not record.is_active:
            await self._audit_failure(session, context, record, base, "deactivated")
            return CodeCheck(ok=False, reason="deactivated", **base_check)

        now = self.clock.now()
        locked_until = ensure_utc(record.locked_until)
        if record.is_locked and locked_until is not None and now < locked_until:
            await self._audit_failure(session, context, record, base, "locked")
            return CodeCheck(ok=False, reason="locked", locked_until=locked_until, **base_check)

        if record.is_locked:
            await self._expire_lock(session, record, now)

        if not verify_code(submitted_code, record.salt, self.settings.code_pepper, record.code_hash):
            return await self._register_failure(session, context, record, base, now)

        # Only clears the counter while the row is still unlocked; a lock
        # committed by a concurrent failure since the read above wins.
        result = await session.execute(
            update(SecretCodeModel)
            .where(SecretCodeModel.id == record.id)
            .where(SecretCodeModel.is_active.is_(True))
            .where(
                or_(
                    SecretCodeModel.is_locked.is_(False),
                    SecretCodeModel.locked_until <= now,
                )
            )
            .values(attempts=0, is_locked=False, locked_until=None)
            .execution_options(synchronize_session=False)
        )
        await session.refresh(record)

        if result.rowcount == 0:
            reason = "deactivated" if not record.is_active else "locked"
            await self._audit_failure(session, context, record, base, reason)
            return CodeCheck(
                ok=False,
                reason=reason,
                locked_until=ensure_utc(record.locked_until) if reason == "locked" else None,
                **base_check,
            )

        if position_id in record.consumed_positions:
            await self._audit(
                session, context.actor, "SECRET_CODE_REPLAY", record, False, context,
                details=dict(base, reason="already_voted"),
                position_id=position_id,
            )
            return CodeCheck(ok=False, reason="already_voted", **base_check)

        await self._audit(
            session, context.actor, "SECRET_CODE_USED", record, True, context,
            details=base, position_id=position_id,
        )
        return CodeCheck(
            ok=True,
            reason="ok",
            attempts_remaining=self.settings.code_max_attempts,
            **base_check,
        )

    async def _expire_lock(
        self, session: AsyncSession, record: SecretCodeModel, now: datetime,
    ) -> None:
        await session.execute(
            update(SecretCodeModel)
            .where(SecretCodeModel.id == record.id)
            .where(SecretCodeModel.is_locked.is_(True))
            .where(SecretCodeModel.locked_until <= now)
            .values(attempts=0, is_locked=False, locked_until=None)
            .execution_options(synchronize_session=False)
        )
        await session.refresh(record)

    async def _register_failure(
        self,
        session: AsyncSession,
        context: RequestContext,
        record: SecretCodeModel,
        base: dict[str, Any],
        now: datetime,
    ) -> CodeCheck:
        max_attempts = self.settings.code_max_attempts
        lock_until = now + timedelta(minutes=self.settings.code_lockout_minutes)
        reaches_limit = SecretCodeModel.attempts + 1 >= max_attempts

        # Single conditional UPDATE: the database evaluates the increment and
        # the lock decision against the same row version.
        await session.execute(
            update(SecretCodeModel)
            .where(SecretCodeModel.id == record.id)
            .values(
                attempts=case(
                    (reaches_limit, max_attempts), else_=SecretCodeModel.attempts + 1
                ),
                is_locked=case((reaches_limit, True), else_=SecretCodeModel.is_locked),
                locked_until=case(
                    (reaches_limit, lock_until), else_=SecretCodeModel.locked_until
                ),
            )
            .execution_options(synchronize_session=False)
        )
        await session.refresh(record)

        locked = record.is_locked
        reason = "locked" if locked else "invalid_code"
        await self._audit_failure(
            session, context, record, base, "invalid_code",
            attempts=record.attempts, locked=locked,
        )
        if locked:
            logger.warning(
                "Secret code locked after %d failed attempts",
                record.attempts,
                extra={"context": {"secret_code_id": record.id}},
            )
            await self._notify_locked(session, record)
        return CodeCheck(
            ok=False,
            reason=reason,
            secret_code_id=record.id,
            attempts_remaining=max(0, max_attempts - record.attempts),
            locked_until=ensure_utc(record.locked_until) if locked else None,
            **base,
        )

    # ── Consume ──

    async def record_consumption(
        self,
        session: AsyncSession,
        secret_code_id: str,
        position_id: str,
        candidate_id: str,
        vote_id: str,
    ) -> bool:
        """Mark ``position_id`` as voted with this code.

        Called only after the ballot itself has been written. Returns False
        if the position was already consumed.
        """
        now = self.clock.now()
        written = await insert_ignore(
            session,
            SecretCodeUseModel.__table__,
            {
                "id": generate_uuid(),
                "secret_code_id": secret_code_id,
                "position_id": position_id,
                "candidate_id": candidate_id,
                "vote_id": vote_id,
                "voted_at": now,
            },
        )
        if written:
            await session.execute(
                update(SecretCodeModel)
                .where(SecretCodeModel.id == secret_code_id)
                .values(total_uses=SecretCodeModel.total_uses + 1, last_used_at=now)
                .execution_options(synchronize_session=False)
            )
        return written

    # ── Internal helpers ──

    async def _notify_locked(self, session: AsyncSession, record: SecretCodeModel) -> None:
        voter = await session.get(VoterModel, record.voter_id)
        if voter is None:
            return
        await notify_quietly(
            self.notifier,
            voter.email,
            "secret_code_locked",
            {
                "voter_name": voter.name,
                "election_id": record.election_id,
                "locked_until": ensure_utc(record.locked_until).isoformat(),
            },
        )

    async def _audit_failure(
        self,
        session: AsyncSession,
        context: RequestContext,
        record: SecretCodeModel | None,
        base: dict[str, Any],
        reason: str,
        **extra: Any,
    ) -> None:
        await self._audit(
            session, context.actor, "SECRET_CODE_FAILED", record, False, context,
            details=dict(base, reason=reason, **extra),
            position_id=base.get("position_id"),
            election_id=base.get("election_id"),
            error_message=reason,
        )

    async def _audit(
        self,
        session: AsyncSession,
        actor: Optional[str],
        action: str,
        record: SecretCodeModel | None,
        success: bool,
        context: Optional[RequestContext],
        details: Optional[dict[str, Any]] = None,
        position_id: Optional[str] = None,
        election_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        if self.audit is None:
            return
        await self.audit.record(
            session,
            actor,
            action,
            "secret_code",
            details or {},
            success,
            context.as_meta() if context else None,
            resource_id=record.id if record else None,
            election_id=record.election_id if record else election_id,
            position_id=position_id,
            error_message=error_message,
            actor_role=context.actor_role if context else None,
        )
