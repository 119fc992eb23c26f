"""Rate & anomaly guard for the voting endpoints."""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ballotguard.audit.risk import is_off_hours
from ballotguard.common.clock import SystemClock
from ballotguard.common.config import BallotguardSettings
from ballotguard.common.security import RequestContext
from ballotguard.guard.store import CounterStore, InMemoryCounterStore

logger = logging.getLogger(__name__)

ADMIN_ROLES = frozenset({"admin", "super_admin", "election_officer"})


@dataclass
class RateDecision:
    allowed: bool
    count: int
    retry_after: int = 0
    events: list[str] = field(default_factory=list)


class RateGuard:
    """Sliding-window request caps plus advisory anomaly signals.

    Only the per-(ip, user) request cap blocks. Failed-attempt, burst and
    off-hours signals are written to the audit log for investigation.
    """

    def __init__(
        self,
        settings: BallotguardSettings,
        store: Optional[CounterStore] = None,
        audit_service=None,
        clock=None,
    ):
        self.settings = settings
        self.store = store if store is not None else InMemoryCounterStore()
        self.audit = audit_service
        self.clock = clock or SystemClock()
        self._last_sweep: float | None = None

    @staticmethod
    def rate_key(context: RequestContext) -> str:
        return f"{context.ip_address}-{context.actor_id or 'anonymous'}"

    async def admit(self, session: AsyncSession, context: RequestContext) -> RateDecision:
        """Count this request and decide whether it may proceed."""
        now = self.clock.now()
        ts = now.timestamp()
        s = self.settings

        await self._sweep_if_due(ts)

        key = f"rate:{self.rate_key(context)}"
        count = await self.store.hit(key, ts, s.rate_limit_window)
        decision = RateDecision(allowed=count <= s.rate_limit_max_requests, count=count)

        burst = await self.store.hit(f"rapid:{context.ip_address}", ts, s.burst_window)
        if burst == s.burst_threshold:
            decision.events.append("RAPID_REQUESTS")
            await self._emit(session, context, "RAPID_REQUESTS", {
                "requests": burst, "window_seconds": s.burst_window,
            })

        if context.actor_role in ADMIN_ROLES and is_off_hours(
            now, s.off_hours_start, s.off_hours_end
        ):
            decision.events.append("UNUSUAL_TIMING")
            await self._emit(session, context, "UNUSUAL_TIMING", {
                "hour": now.hour, "role": context.actor_role,
            })

        if not decision.allowed:
            oldest = await self.store.oldest(key, ts, s.rate_limit_window)
            decision.retry_after = max(
                1, math.ceil((oldest or ts) + s.rate_limit_window - ts)
            )
            logger.warning(
                "Rate limit exceeded",
                extra={"context": {"key": self.rate_key(context), "count": count}},
            )
            await self._emit(session, context, "RATE_LIMIT_EXCEEDED", {
                "requests": count,
                "limit": s.rate_limit_max_requests,
                "window_seconds": s.rate_limit_window,
                "retry_after": decision.retry_after,
            }, success=False)
        return decision

    @property
    def longest_window(self) -> int:
        s = self.settings
        return max(s.rate_limit_window, s.burst_window, s.failed_attempt_window)

    async def _sweep_if_due(self, ts: float) -> None:
        window = self.longest_window
        if self._last_sweep is not None and ts - self._last_sweep < window:
            return
        self._last_sweep = ts
        dropped = await self.store.sweep(ts, window)
        if dropped:
            logger.debug("Dropped %d idle rate counters", dropped)

    async def record_failed_attempt(
        self, session: AsyncSession, context: RequestContext,
    ) -> int:
        """Track a failed authentication from this IP; flag repeated failures."""
        s = self.settings
        failures = await self.store.hit(
            f"failed:{context.ip_address}",
            self.clock.now().timestamp(),
            s.failed_attempt_window,
        )
        if failures >= s.failed_attempt_threshold:
            await self._emit(session, context, "MULTIPLE_FAILED_ATTEMPTS", {
                "failed_attempts": failures,
                "window_seconds": s.failed_attempt_window,
            })
        return failures

    async def _emit(
        self,
        session: AsyncSession,
        context: RequestContext,
        action: str,
        details: dict,
        success: bool = True,
    ) -> None:
        if self.audit is None:
            return
        await self.audit.record(
            session,
            context.actor,
            action,
            "request",
            dict(details, ip_address=context.ip_address),
            success,
            context.as_meta(),
            actor_role=context.actor_role,
        )
