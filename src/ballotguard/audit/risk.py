"""Risk scoring for audit entries.

Every entry's score comes from :func:`assess_risk`; callers never supply
one. The function is pure so it can be exercised without storage.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

LEVEL_SCORES = {"LOW": 10, "MEDIUM": 30, "HIGH": 70, "CRITICAL": 90}
_LEVEL_ORDER = ("LOW", "MEDIUM", "HIGH", "CRITICAL")

FAILURE_PENALTY = 20
OFF_HOURS_PENALTY = 15
HIGH_RISK_ACTION_PENALTY = 10
LOCATION_PENALTY = 5

HIGH_RISK_ACTIONS = frozenset({
    "VOTE_CAST",
    "SECRET_CODE_USED",
    "ADMIN_LOGIN",
    "ACCESS_GRANTED",
})

# action -> (category, severity)
ACTION_TABLE: dict[str, tuple[str, str]] = {
    "SECRET_CODE_GENERATED": ("VOTER", "LOW"),
    "SECRET_CODE_USED": ("VOTE", "LOW"),
    "SECRET_CODE_FAILED": ("SECURITY", "HIGH"),
    "SECRET_CODE_REPLAY": ("SECURITY", "HIGH"),
    "SECRET_CODE_DEACTIVATED": ("ADMIN", "MEDIUM"),
    "SECRET_CODE_REACTIVATED": ("ADMIN", "MEDIUM"),
    "VOTER_ELIGIBILITY_FAILED": ("ACCESS", "MEDIUM"),
    "ACCESS_GRANTED": ("ACCESS", "LOW"),
    "ACCESS_SUSPENDED": ("ACCESS", "MEDIUM"),
    "ACCESS_REVOKED": ("ACCESS", "MEDIUM"),
    "ACCESS_REACTIVATED": ("ACCESS", "MEDIUM"),
    "ACCESS_SCOPE_CHANGED": ("ACCESS", "LOW"),
    "VOTE_CAST": ("VOTE", "LOW"),
    "VOTE_REJECTED": ("VOTE", "MEDIUM"),
    "VOTE_VERIFIED": ("VOTE", "LOW"),
    "VOTE_COUNTED": ("VOTE", "LOW"),
    "VOTE_DISPUTED": ("VOTE", "MEDIUM"),
    "VOTE_DISPUTE_RESOLVED": ("VOTE", "MEDIUM"),
    "VOTE_INVALIDATED": ("VOTE", "HIGH"),
    "RATE_LIMIT_EXCEEDED": ("SECURITY", "MEDIUM"),
    "MULTIPLE_FAILED_ATTEMPTS": ("SECURITY", "HIGH"),
    "UNUSUAL_TIMING": ("SECURITY", "MEDIUM"),
    "RAPID_REQUESTS": ("SECURITY", "MEDIUM"),
    "ELECTION_PHASE_CHANGED": ("ELECTION", "LOW"),
    "ELECTION_STATUS_CHANGED": ("ELECTION", "LOW"),
    "PROVISIONAL_RESULTS_DISPATCHED": ("ELECTION", "LOW"),
    "DEADLINE_REMINDERS_SENT": ("ELECTION", "LOW"),
    "ADMIN_LOGIN": ("ADMIN", "MEDIUM"),
}


@dataclass(frozen=True)
class RiskAssessment:
    score: int
    level: str

    @property
    def is_suspicious(self) -> bool:
        return self.score >= 70 or self.level in ("HIGH", "CRITICAL")


def categorize(action: str) -> str:
    return ACTION_TABLE.get(action, ("OTHER", "LOW"))[0]


def severity_of(action: str) -> str:
    return ACTION_TABLE.get(action, ("OTHER", "LOW"))[1]


def is_off_hours(timestamp: datetime, start: int = 6, end: int = 22) -> bool:
    return timestamp.hour < start or timestamp.hour > end


def level_for_score(score: int) -> str:
    if score >= 90:
        return "CRITICAL"
    if score >= 70:
        return "HIGH"
    if score >= 30:
        return "MEDIUM"
    return "LOW"


def failure_baseline(action: str) -> int:
    """Lowest score a failed entry for ``action`` can carry."""
    return min(100, LEVEL_SCORES[severity_of(action)] + FAILURE_PENALTY)


def assess_risk(
    action: str,
    success: bool,
    timestamp: datetime,
    metadata: Optional[dict[str, Any]] = None,
) -> RiskAssessment:
    metadata = metadata or {}
    severity = severity_of(action)

    score = LEVEL_SCORES[severity]
    if not success:
        score += FAILURE_PENALTY
    if is_off_hours(timestamp):
        score += OFF_HOURS_PENALTY
    if action in HIGH_RISK_ACTIONS:
        score += HIGH_RISK_ACTION_PENALTY
    if metadata.get("location"):
        score += LOCATION_PENALTY
    score = max(0, min(100, score))

    banded = level_for_score(score)
    level = max(severity, banded, key=_LEVEL_ORDER.index)
    return RiskAssessment(score=score, level=level)
