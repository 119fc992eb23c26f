"""Pure phase/status rules for the election state machine.

The phase is a function of "now" and the election's boundary timestamps:

    now < registration_deadline            -> registration
    now < nomination_deadline              -> nomination
    now < start_at                         -> campaign
    start_at <= now <= end_at              -> voting
    end_at < now (< results_end)           -> results
    now >= results_end                     -> completed

Missing optional boundaries are skipped. Phases only ever move forward.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ballotguard.common.clock import ensure_utc
from ballotguard.elections.models import PHASES

_RANK = {phase: i for i, phase in enumerate(PHASES)}

TERMINAL_STATUSES = ("cancelled",)


@dataclass
class PhaseDecision:
    """Target phase/status for one election at one instant."""
    phase: str
    status: str

    def differs_from(self, phase: str, status: str) -> bool:
        return self.phase != phase or self.status != status


def phase_at(
    now: datetime,
    start_at: datetime,
    end_at: datetime,
    registration_deadline: Optional[datetime] = None,
    nomination_deadline: Optional[datetime] = None,
    results_end: Optional[datetime] = None,
) -> str:
    now = ensure_utc(now)
    start_at = ensure_utc(start_at)
    end_at = ensure_utc(end_at)
    registration_deadline = ensure_utc(registration_deadline)
    nomination_deadline = ensure_utc(nomination_deadline)
    results_end = ensure_utc(results_end)

    if registration_deadline is not None and now < registration_deadline:
        return "registration"
    if nomination_deadline is not None and now < nomination_deadline:
        return "nomination"
    if now < start_at:
        return "campaign"
    if now <= end_at:
        return "voting"
    if results_end is not None and now >= results_end:
        return "completed"
    return "results"


def advance_phase(current: str, target: str) -> str:
    """Return the later of the two phases."""
    if _RANK.get(target, 0) > _RANK.get(current, 0):
        return target
    return current


def decide(election, now: datetime) -> PhaseDecision:
    """Compute the phase/status an election should hold at ``now``."""
    target = phase_at(
        now,
        election.start_at,
        election.end_at,
        registration_deadline=election.registration_deadline,
        nomination_deadline=election.nomination_deadline,
        results_end=election.results_end,
    )
    phase = advance_phase(election.current_phase, target)
    status = election.status

    now = ensure_utc(now)
    start_at = ensure_utc(election.start_at)
    end_at = ensure_utc(election.end_at)

    if status == "scheduled" and phase == "voting" and start_at <= now <= end_at:
        status = "active"
    elif status in ("scheduled", "active") and phase in ("results", "completed") and now > end_at:
        # A scheduled election whose window passed unobserved still concludes.
        status = "completed"
    return PhaseDecision(phase=phase, status=status)


def is_open_for_voting(election, now: datetime) -> bool:
    now = ensure_utc(now)
    return (
        election.status == "active"
        and election.current_phase == "voting"
        and ensure_utc(election.start_at) <= now <= ensure_utc(election.end_at)
    )
