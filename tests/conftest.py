"""Shared test fixtures for Ballotguard."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from ballotguard.audit.service import AuditService
from ballotguard.common.clock import FrozenClock
from ballotguard.common.config import BallotguardSettings
from ballotguard.common.database import DatabaseManager
from ballotguard.elections.service import ElectionService
from ballotguard.eligibility.service import EligibilityService
from ballotguard.guard.service import RateGuard
from ballotguard.notifications.dispatcher import LoggingDispatcher
from ballotguard.secret_codes.service import SecretCodeService
from ballotguard.votes.casting import VotingService
from ballotguard.votes.service import VoteService


SECRET_KEY = "test-secret-key-for-unit-tests"
CODE_PEPPER = "test-code-pepper-for-unit-tests"
AUDIT_KEY = "test-audit-key-for-unit-tests"
API_KEY = "test-admin-api-key"
NOON = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@dataclass
class Ballot:
    """Ids of a ready-to-vote election: one voter granted the chair only."""
    election_id: str
    position_id: str
    other_position_id: str
    candidate_id: str
    rival_id: str
    other_candidate_id: str
    voter_id: str
    grant_id: str
    code_id: str
    code: str


# ── Service-level fixtures ──


@pytest.fixture
def settings(tmp_path):
    # File-backed so separate sessions get separate connections.
    return BallotguardSettings(
        secret_key=SECRET_KEY,
        code_pepper=CODE_PEPPER,
        audit_hmac_key=AUDIT_KEY,
        api_key=API_KEY,
        db_url=f"sqlite+aiosqlite:///{tmp_path / 'ballotguard.db'}",
        db_retry_backoff=0,
        scheduler_enabled=False,
    )


@pytest.fixture
def clock():
    return FrozenClock(NOON)


@pytest.fixture
async def db(settings):
    manager = DatabaseManager(settings)
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def notifier():
    return LoggingDispatcher()


@pytest.fixture
def audit_svc(settings, clock):
    return AuditService(settings, clock=clock)


@pytest.fixture
def election_svc():
    return ElectionService()


@pytest.fixture
def code_svc(settings, audit_svc, notifier, clock):
    return SecretCodeService(settings, audit_service=audit_svc, notifier=notifier, clock=clock)


@pytest.fixture
def eligibility_svc(settings, audit_svc, clock):
    return EligibilityService(settings, audit_service=audit_svc, clock=clock)


@pytest.fixture
def vote_svc(settings, code_svc, eligibility_svc, audit_svc, notifier, clock):
    return VoteService(
        settings, code_svc, eligibility_svc,
        audit_service=audit_svc, notifier=notifier, clock=clock,
    )


@pytest.fixture
def guard(settings, audit_svc, clock):
    return RateGuard(settings, audit_service=audit_svc, clock=clock)


@pytest.fixture
def voting_svc(code_svc, eligibility_svc, vote_svc, guard, clock):
    return VotingService(code_svc, eligibility_svc, vote_svc, guard=guard, clock=clock)


@pytest.fixture
async def ballot(db, clock, election_svc, code_svc, eligibility_svc) -> Ballot:
    now = clock.now()
    async with db.get_session() as session:
        election = await election_svc.create_election(
            session,
            "Board Election",
            start_at=now - timedelta(hours=1),
            end_at=now + timedelta(hours=8),
            status="active",
            results_end=now + timedelta(days=2),
        )
        election.current_phase = "voting"
        chair = await election_svc.add_position(session, election.id, "Chair", order=0)
        treasurer = await election_svc.add_position(session, election.id, "Treasurer", order=1)
        ada = await election_svc.add_candidate(session, chair.id, "Ada Obi", email="ada@example.com")
        sam = await election_svc.add_candidate(session, chair.id, "Sam Reyes", email="sam@example.com")
        lee = await election_svc.add_candidate(
            session, treasurer.id, "Lee Park", email="lee@example.com",
        )
        voter = await election_svc.register_voter(
            session, "V-0001", "Jo Voter", email="jo@example.com",
        )
        grant = await eligibility_svc.grant(session, voter.id, election.id, [chair.id])
        record, code = await code_svc.issue(session, voter.id, election.id, code="ABC123")
    return Ballot(
        election_id=election.id,
        position_id=chair.id,
        other_position_id=treasurer.id,
        candidate_id=ada.id,
        rival_id=sam.id,
        other_candidate_id=lee.id,
        voter_id=voter.id,
        grant_id=grant.id,
        code_id=record.id,
        code=code,
    )


# ── API fixtures ──


@pytest.fixture
def api_key():
    return API_KEY


@pytest.fixture
def app(monkeypatch):
    """Create a test app with in-memory DB."""
    monkeypatch.setenv("BALLOTGUARD_DB_URL", "sqlite+aiosqlite://")
    monkeypatch.setenv("BALLOTGUARD_SECRET_KEY", SECRET_KEY)
    monkeypatch.setenv("BALLOTGUARD_CODE_PEPPER", CODE_PEPPER)
    monkeypatch.setenv("BALLOTGUARD_AUDIT_HMAC_KEY", AUDIT_KEY)
    monkeypatch.setenv("BALLOTGUARD_API_KEY", API_KEY)
    monkeypatch.setenv("BALLOTGUARD_SCHEDULER_ENABLED", "false")

    # Clear caches and singletons so new env vars take effect
    from ballotguard.common.config import get_settings
    get_settings.cache_clear()

    from ballotguard.deps import reset_singletons
    reset_singletons()

    from ballotguard.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from ballotguard.deps import get_db
    db = get_db()
    await db.init()
    await db.create_all()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


@pytest.fixture
def admin_headers():
    return {"X-Ballotguard-Api-Key": API_KEY}
