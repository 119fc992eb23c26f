"""Audit service: record, query, verify and expire security audit entries."""

import hashlib
import hmac as hmac_mod
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import delete, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ballotguard.audit.models import AuditLogModel
from ballotguard.audit.risk import assess_risk, categorize
from ballotguard.common.clock import SystemClock, ensure_utc
from ballotguard.common.config import BallotguardSettings
from ballotguard.common.models import generate_uuid
from ballotguard.common.security import ANONYMOUS_ACTOR

logger = logging.getLogger(__name__)


class AuditService:
    """Append-only, HMAC-sealed security log with computed risk scores."""

    def __init__(self, settings: BallotguardSettings, clock=None):
        self.settings = settings
        self.clock = clock or SystemClock()

    # ── Write ──

    async def record(
        self,
        session: AsyncSession,
        actor: Optional[str],
        action: str,
        resource_type: str,
        details: Optional[dict[str, Any]] = None,
        success: bool = True,
        request_meta: Optional[dict[str, Any]] = None,
        *,
        resource_id: Optional[str] = None,
        election_id: Optional[str] = None,
        position_id: Optional[str] = None,
        error_message: Optional[str] = None,
        actor_role: Optional[str] = None,
    ) -> AuditLogModel | None:
        """Persist one audit entry.

        Never raises: a failed write is logged and the caller carries on.
        The insert runs inside a SAVEPOINT so a failure cannot poison the
        caller's transaction.
        """
        try:
            entry = self._build_entry(
                actor, action, resource_type, details or {}, success,
                request_meta or {}, resource_id, election_id, position_id,
                error_message, actor_role,
            )
            async with session.begin_nested():
                session.add(entry)
            return entry
        except Exception:
            logger.exception(
                "Failed to persist audit entry",
                extra={"context": {"action": action, "resource_type": resource_type}},
            )
            return None

    def _build_entry(
        self,
        actor: Optional[str],
        action: str,
        resource_type: str,
        details: dict[str, Any],
        success: bool,
        meta: dict[str, Any],
        resource_id: Optional[str],
        election_id: Optional[str],
        position_id: Optional[str],
        error_message: Optional[str],
        actor_role: Optional[str],
    ) -> AuditLogModel:
        now = self.clock.now()
        # Round-trip through JSON so the stored payload matches what is hashed.
        details = json.loads(json.dumps(details, default=str))
        location = meta.get("location") or {}
        risk = assess_risk(action, success, now, {"location": location})

        entry_id = generate_uuid()
        actor_id = actor or ANONYMOUS_ACTOR
        entry_hash = self._compute_entry_hash(
            entry_id, now, actor_id, action, resource_type, resource_id,
            election_id, success, details, risk.score,
        )
        return AuditLogModel(
            id=entry_id,
            created_at=now,
            actor_id=actor_id,
            actor_role=actor_role,
            action=action,
            category=categorize(action),
            resource_type=resource_type,
            resource_id=resource_id,
            election_id=election_id,
            position_id=position_id,
            success=success,
            error_message=error_message,
            details=details,
            ip_address=meta.get("ip_address"),
            user_agent=meta.get("user_agent"),
            device_fingerprint=meta.get("device_fingerprint"),
            session_id=meta.get("session_id"),
            location=location,
            risk_score=risk.score,
            risk_level=risk.level,
            is_suspicious=risk.is_suspicious,
            entry_hash=entry_hash,
            signature=self._sign(entry_hash),
            expires_at=now + timedelta(days=self.settings.audit_retention_days),
        )

    # ── Read ──

    async def query(
        self,
        session: AsyncSession,
        actor: Optional[str] = None,
        action: Optional[str] = None,
        category: Optional[str] = None,
        election_id: Optional[str] = None,
        success: Optional[bool] = None,
        risk_level: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[AuditLogModel], int]:
        """Filtered entries, newest first, plus the total match count."""
        filters = []
        if actor:
            filters.append(AuditLogModel.actor_id == actor)
        if action:
            filters.append(AuditLogModel.action == action)
        if category:
            filters.append(AuditLogModel.category == category)
        if election_id:
            filters.append(AuditLogModel.election_id == election_id)
        if success is not None:
            filters.append(AuditLogModel.success == success)
        if risk_level:
            filters.append(AuditLogModel.risk_level == risk_level)
        if since:
            filters.append(AuditLogModel.created_at >= since)
        if until:
            filters.append(AuditLogModel.created_at <= until)

        total = (
            await session.execute(
                select(func.count()).select_from(AuditLogModel).where(*filters)
            )
        ).scalar_one()
        result = await session.execute(
            select(AuditLogModel)
            .where(*filters)
            .order_by(AuditLogModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def statistics(
        self,
        session: AsyncSession,
        election_id: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> dict[str, Any]:
        filters = []
        if election_id:
            filters.append(AuditLogModel.election_id == election_id)
        if since:
            filters.append(AuditLogModel.created_at >= since)

        row = (
            await session.execute(
                select(
                    func.count(AuditLogModel.id),
                    func.count(AuditLogModel.id).filter(AuditLogModel.success.is_(True)),
                    func.count(AuditLogModel.id).filter(
                        AuditLogModel.risk_level.in_(("HIGH", "CRITICAL"))
                    ),
                    func.count(distinct(AuditLogModel.actor_id)),
                    func.count(distinct(AuditLogModel.ip_address)),
                ).where(*filters)
            )
        ).one()
        total, successful, high_risk, unique_actors, unique_ips = row
        return {
            "total": total,
            "successful": successful,
            "failed": total - successful,
            "high_risk": high_risk,
            "unique_actors": unique_actors,
            "unique_ips": unique_ips,
            "success_rate": round(successful / total * 100, 2) if total else 0.0,
        }

    # ── Verify ──

    async def verify_entries(
        self, session: AsyncSession, election_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """Recompute every entry's hash and check its signature."""
        query = select(AuditLogModel).order_by(AuditLogModel.created_at.asc())
        if election_id:
            query = query.where(AuditLogModel.election_id == election_id)
        entries = list((await session.execute(query)).scalars().all())

        invalid: list[str] = []
        for entry in entries:
            expected = self._compute_entry_hash(
                entry.id, entry.created_at, entry.actor_id, entry.action,
                entry.resource_type, entry.resource_id, entry.election_id,
                entry.success, entry.details or {}, entry.risk_score,
            )
            if entry.entry_hash != expected or not self._verify_signature(
                entry.entry_hash, entry.signature
            ):
                invalid.append(entry.id)
        return {
            "valid": not invalid,
            "entries_checked": len(entries),
            "invalid_ids": invalid,
        }

    # ── Retention ──

    async def purge_expired(
        self, session: AsyncSession, now: Optional[datetime] = None,
    ) -> int:
        now = now or self.clock.now()
        result = await session.execute(
            delete(AuditLogModel).where(AuditLogModel.expires_at <= now)
        )
        if result.rowcount:
            logger.info("Purged %d expired audit entries", result.rowcount)
        return result.rowcount

    # ── Internal helpers ──

    @staticmethod
    def _compute_entry_hash(
        entry_id: str,
        created_at: datetime,
        actor_id: str,
        action: str,
        resource_type: str,
        resource_id: Optional[str],
        election_id: Optional[str],
        success: bool,
        details: dict[str, Any],
        risk_score: int,
    ) -> str:
        """SHA-256 of canonical JSON of the entry fields."""
        canonical = json.dumps(
            {
                "id": entry_id,
                "created_at": ensure_utc(created_at).isoformat(),
                "actor_id": actor_id,
                "action": action,
                "resource_type": resource_type,
                "resource_id": resource_id,
                "election_id": election_id,
                "success": success,
                "details": details,
                "risk_score": risk_score,
            },
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(canonical.encode()).hexdigest()

    def _sign(self, entry_hash: str) -> str:
        """HMAC-SHA256 of entry_hash with the current audit key."""
        return hmac_mod.new(
            self.settings.current_audit_key.encode(),
            entry_hash.encode(),
            hashlib.sha256,
        ).hexdigest()

    def _verify_signature(self, entry_hash: str, signature: str) -> bool:
        """Verify signature against all keys in the keyring (supports rotated keys)."""
        for _version, key in self.settings.audit_keyring.items():
            expected = hmac_mod.new(
                key.encode(), entry_hash.encode(), hashlib.sha256,
            ).hexdigest()
            if hmac_mod.compare_digest(expected, signature):
                return True
        return False
