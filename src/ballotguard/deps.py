"""Dependency injection singletons for Ballotguard."""

from ballotguard.audit.service import AuditService
from ballotguard.common.clock import SystemClock
from ballotguard.common.config import get_settings
from ballotguard.common.database import DatabaseManager
from ballotguard.elections.service import ElectionService
from ballotguard.eligibility.service import EligibilityService
from ballotguard.guard.service import RateGuard
from ballotguard.guard.store import build_counter_store
from ballotguard.notifications.dispatcher import NotificationDispatcher, build_dispatcher
from ballotguard.scheduler.reconciler import ElectionReconciler, build_scheduler
from ballotguard.scheduler.ticker import Scheduler
from ballotguard.secret_codes.service import SecretCodeService
from ballotguard.votes.casting import VotingService
from ballotguard.votes.service import VoteService

_db: DatabaseManager | None = None
_clock: SystemClock | None = None
_notifier: NotificationDispatcher | None = None
_audit: AuditService | None = None
_elections: ElectionService | None = None
_codes: SecretCodeService | None = None
_eligibility: EligibilityService | None = None
_votes: VoteService | None = None
_voting: VotingService | None = None
_guard: RateGuard | None = None
_reconciler: ElectionReconciler | None = None
_scheduler: Scheduler | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_clock() -> SystemClock:
    global _clock
    if _clock is None:
        _clock = SystemClock()
    return _clock


def get_notifier() -> NotificationDispatcher:
    global _notifier
    if _notifier is None:
        _notifier = build_dispatcher(get_settings())
    return _notifier


def get_audit_service() -> AuditService:
    global _audit
    if _audit is None:
        _audit = AuditService(get_settings(), clock=get_clock())
    return _audit


def get_election_service() -> ElectionService:
    global _elections
    if _elections is None:
        _elections = ElectionService()
    return _elections


def get_secret_code_service() -> SecretCodeService:
    global _codes
    if _codes is None:
        _codes = SecretCodeService(
            get_settings(),
            audit_service=get_audit_service(),
            notifier=get_notifier(),
            clock=get_clock(),
        )
    return _codes


def get_eligibility_service() -> EligibilityService:
    global _eligibility
    if _eligibility is None:
        _eligibility = EligibilityService(
            get_settings(), audit_service=get_audit_service(), clock=get_clock(),
        )
    return _eligibility


def get_vote_service() -> VoteService:
    global _votes
    if _votes is None:
        _votes = VoteService(
            get_settings(),
            get_secret_code_service(),
            get_eligibility_service(),
            audit_service=get_audit_service(),
            notifier=get_notifier(),
            clock=get_clock(),
        )
    return _votes


def get_rate_guard() -> RateGuard:
    global _guard
    if _guard is None:
        settings = get_settings()
        _guard = RateGuard(
            settings,
            store=build_counter_store(settings.rate_counter_backend),
            audit_service=get_audit_service(),
            clock=get_clock(),
        )
    return _guard


def get_voting_service() -> VotingService:
    global _voting
    if _voting is None:
        _voting = VotingService(
            get_secret_code_service(),
            get_eligibility_service(),
            get_vote_service(),
            guard=get_rate_guard(),
            clock=get_clock(),
        )
    return _voting


def get_reconciler() -> ElectionReconciler:
    global _reconciler
    if _reconciler is None:
        _reconciler = ElectionReconciler(
            get_db(),
            get_election_service(),
            audit_service=get_audit_service(),
            notifier=get_notifier(),
            clock=get_clock(),
        )
    return _reconciler


def get_scheduler() -> Scheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = build_scheduler(
            get_settings(), get_reconciler(), get_db(), get_audit_service(),
        )
    return _scheduler


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _clock, _notifier, _audit, _elections, _codes, _eligibility
    global _votes, _voting, _guard, _reconciler, _scheduler
    _db = None
    _clock = None
    _notifier = None
    _audit = None
    _elections = None
    _codes = None
    _eligibility = None
    _votes = None
    _voting = None
    _guard = None
    _reconciler = None
    _scheduler = None
