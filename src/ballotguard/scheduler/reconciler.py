"""Time-driven election phase reconciliation and deadline reminders."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ballotguard.common.clock import SystemClock, ensure_utc
from ballotguard.elections.models import ElectionModel
from ballotguard.elections.phases import decide
from ballotguard.notifications.dispatcher import notify_quietly
from ballotguard.scheduler.ticker import Scheduler

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

# (kind, election attribute); voting opening also closes the campaign
REMINDER_BOUNDARIES = (
    ("registration", "registration_deadline"),
    ("nomination", "nomination_deadline"),
    ("campaign_end", "start_at"),
    ("voting_start", "start_at"),
    ("voting_end", "end_at"),
)


@dataclass
class TickReport:
    total: int = 0
    transitioned: int = 0
    failed: int = 0


@dataclass
class ReminderReport:
    elections: int = 0
    reminders: int = 0
    delivered: int = 0
    failed: int = 0


class ElectionReconciler:
    """Brings every pending election's phase/status in line with the clock."""

    def __init__(
        self,
        db,
        election_service,
        audit_service=None,
        notifier=None,
        clock=None,
    ):
        self.db = db
        self.elections = election_service
        self.audit = audit_service
        self.notifier = notifier
        self.clock = clock or SystemClock()

    async def tick(self, now: Optional[datetime] = None) -> TickReport:
        """Reconcile all pending elections, each in its own transaction."""
        now = now or self.clock.now()
        async with self.db.get_session() as session:
            election_ids = await self.elections.list_pending_elections(session)

        report = TickReport(total=len(election_ids))
        for election_id in election_ids:
            try:
                changed = await self.db.run(
                    lambda session, eid=election_id: self.reconcile(session, eid, now)
                )
            except Exception:
                report.failed += 1
                logger.exception(
                    "Reconciliation failed for election %s", election_id,
                    extra={"context": {"election_id": election_id}},
                )
                continue
            if changed:
                report.transitioned += 1

        logger.info(
            "Reconciliation tick: %d elections, %d transitioned, %d failed",
            report.total, report.transitioned, report.failed,
        )
        return report

    async def reconcile(
        self, session: AsyncSession, election_id: str, now: datetime,
    ) -> bool:
        """Apply due transitions to one election. Returns True if anything changed."""
        election = await session.get(ElectionModel, election_id, populate_existing=True)
        if election is None or election.status == "cancelled":
            return False

        decision = decide(election, now)
        changed = False

        if decision.phase != election.current_phase:
            previous = election.current_phase
            election.current_phase = decision.phase
            changed = True
            await self._audit(session, election, "ELECTION_PHASE_CHANGED", {
                "from": previous, "to": decision.phase,
            })

        if decision.status != election.status:
            previous = election.status
            election.status = decision.status
            changed = True
            await self._audit(session, election, "ELECTION_STATUS_CHANGED", {
                "from": previous, "to": decision.status,
            })

        if (
            election.current_phase in ("results", "completed")
            and election.status in ("active", "completed")
            and not election.provisional_results_sent
        ):
            await self._dispatch_provisional_results(session, election, now)
            changed = True

        if changed:
            election.last_reconciled_at = now
            await session.flush()
            logger.info(
                "Election %s now %s/%s", election.id, election.status, election.current_phase,
            )
        return changed

    async def _dispatch_provisional_results(
        self, session: AsyncSession, election: ElectionModel, now: datetime,
    ) -> None:
        tally = await self.elections.provisional_tally(session, election.id)
        delivered = 0
        for row in tally:
            sent = await notify_quietly(
                self.notifier,
                row["candidate_email"],
                "provisional_results",
                dict(row, election_title=election.title),
            )
            delivered += int(sent)

        # Set regardless of delivery failures; dispatch is one-shot.
        election.provisional_results_sent = True
        election.provisional_results_sent_at = now
        await self._audit(session, election, "PROVISIONAL_RESULTS_DISPATCHED", {
            "candidates": len(tally),
            "delivered": delivered,
            "total_votes": sum(r["vote_count"] for r in tally),
        })

    async def send_deadline_reminders(
        self,
        now: Optional[datetime] = None,
        horizon: timedelta = timedelta(days=1),
    ) -> ReminderReport:
        """Remind recipients of every boundary falling in ``[now, now + horizon)``.

        Run once per ``horizon`` so that each boundary is announced once.
        """
        now = now or self.clock.now()
        until = now + horizon
        async with self.db.get_session() as session:
            election_ids = await self.elections.list_upcoming_deadlines(session, now, until)

        report = ReminderReport(elections=len(election_ids))
        for election_id in election_ids:
            try:
                reminders, delivered = await self.db.run(
                    lambda session, eid=election_id: self.remind(session, eid, now, until)
                )
            except Exception:
                report.failed += 1
                logger.exception(
                    "Deadline reminders failed for election %s", election_id,
                    extra={"context": {"election_id": election_id}},
                )
                continue
            report.reminders += reminders
            report.delivered += delivered

        logger.info(
            "Deadline reminders: %d elections, %d reminders, %d delivered, %d failed",
            report.elections, report.reminders, report.delivered, report.failed,
        )
        return report

    async def remind(
        self, session: AsyncSession, election_id: str, now: datetime, until: datetime,
    ) -> tuple[int, int]:
        """Send the reminders due for one election. Returns (reminders, delivered)."""
        election = await session.get(ElectionModel, election_id, populate_existing=True)
        if election is None:
            return 0, 0

        due = []
        for kind, attribute in REMINDER_BOUNDARIES:
            deadline = ensure_utc(getattr(election, attribute))
            if deadline is not None and now <= deadline < until:
                due.append((kind, deadline))

        delivered = 0
        recipients = 0
        for kind, deadline in due:
            for name, email in await self.elections.reminder_recipients(session, election.id, kind):
                recipients += 1
                sent = await notify_quietly(self.notifier, email, "deadline_reminder", {
                    "recipient_name": name,
                    "election_title": election.title,
                    "deadline_type": kind,
                    "deadline_at": deadline.isoformat(),
                })
                delivered += int(sent)

        if due:
            await self._audit(session, election, "DEADLINE_REMINDERS_SENT", {
                "deadlines": [kind for kind, _ in due],
                "recipients": recipients,
                "delivered": delivered,
            })
        return len(due), delivered

    async def _audit(
        self, session: AsyncSession, election: ElectionModel, action: str, details: dict,
    ) -> None:
        if self.audit is None:
            return
        await self.audit.record(
            session,
            SYSTEM_ACTOR,
            action,
            "election",
            details,
            True,
            resource_id=election.id,
            election_id=election.id,
        )


def build_scheduler(settings, reconciler: ElectionReconciler, db, audit_service) -> Scheduler:
    """Register the phase, reminder and audit retention tasks."""
    scheduler = Scheduler()
    scheduler.add_task("election-phases", settings.phase_tick_interval, reconciler.tick)

    async def deadline_reminders():
        return await reconciler.send_deadline_reminders(
            horizon=timedelta(seconds=settings.reminder_interval),
        )

    scheduler.add_task("deadline-reminders", settings.reminder_interval, deadline_reminders)

    async def purge_audit() -> int:
        async with db.get_session() as session:
            return await audit_service.purge_expired(session)

    scheduler.add_task("audit-retention", settings.audit_purge_interval, purge_audit)
    return scheduler
