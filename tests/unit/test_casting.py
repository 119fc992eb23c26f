"""Tests for the cast-vote pipeline."""

from ballotguard.common.exceptions import CANNOT_VOTE
from ballotguard.common.security import RequestContext


async def _cast(db, voting_svc, ballot, **overrides):
    fields = {
        "voter_id": ballot.voter_id,
        "election_id": ballot.election_id,
        "position_id": ballot.position_id,
        "candidate_id": ballot.candidate_id,
        "secret_code": ballot.code,
    }
    fields.update(overrides)
    context = RequestContext(ip_address="10.0.0.8", actor_id=fields["voter_id"] or None)
    async with db.get_session() as session:
        return await voting_svc.cast(session, context=context, **fields)


class TestCastPipeline:
    async def test_successful_cast(self, db, voting_svc, ballot):
        outcome = await _cast(db, voting_svc, ballot)
        assert outcome.success is True
        assert outcome.code == "OK"
        assert outcome.status_code == 200
        assert outcome.vote.receipt_number.startswith("VOTE-")

    async def test_missing_fields(self, db, voting_svc, ballot):
        outcome = await _cast(db, voting_svc, ballot, candidate_id="", secret_code="  ")
        assert outcome.success is False
        assert outcome.code == "MISSING_FIELDS"
        assert outcome.status_code == 400
        assert "candidate_id" in outcome.message
        assert "secret_code" in outcome.message

    async def test_election_closed(self, db, voting_svc, clock, ballot):
        clock.advance(hours=9)
        outcome = await _cast(db, voting_svc, ballot)
        assert outcome.code == "ELECTION_CLOSED"
        assert outcome.status_code == 403

    async def test_unknown_election(self, db, voting_svc, ballot):
        outcome = await _cast(db, voting_svc, ballot, election_id="missing")
        assert outcome.code == "ELECTION_CLOSED"

    async def test_wrong_code(self, db, voting_svc, ballot):
        outcome = await _cast(db, voting_svc, ballot, secret_code="ZZZ999")
        assert outcome.code == "INVALID_SECRET_CODE"
        assert outcome.status_code == 403
        assert outcome.message == CANNOT_VOTE

    async def test_third_wrong_code_locks(self, db, voting_svc, ballot):
        codes = []
        for _ in range(3):
            outcome = await _cast(db, voting_svc, ballot, secret_code="ZZZ999")
            codes.append(outcome.code)
        assert codes == ["INVALID_SECRET_CODE", "INVALID_SECRET_CODE", "LOCKED"]
        assert outcome.status_code == 423

        # The right code is refused until the lock expires.
        outcome = await _cast(db, voting_svc, ballot)
        assert outcome.code == "LOCKED"

    async def test_not_eligible_for_position(self, db, voting_svc, code_svc, ballot):
        outcome = await _cast(
            db, voting_svc, ballot,
            position_id=ballot.other_position_id,
            candidate_id=ballot.other_candidate_id,
        )
        assert outcome.code == "NOT_ELIGIBLE"
        assert outcome.status_code == 403
        assert outcome.message == CANNOT_VOTE

        # The code was not consumed by the refused ballot.
        async with db.get_session() as session:
            record = await code_svc.get_code(session, ballot.voter_id, ballot.election_id)
            assert record.total_uses == 0
        assert (await _cast(db, voting_svc, ballot)).success

    async def test_second_ballot_already_voted(self, db, voting_svc, ballot):
        assert (await _cast(db, voting_svc, ballot)).success
        outcome = await _cast(db, voting_svc, ballot, candidate_id=ballot.rival_id)
        assert outcome.code == "ALREADY_VOTED"
        assert outcome.status_code == 409

    async def test_invalid_candidate(self, db, voting_svc, ballot):
        outcome = await _cast(db, voting_svc, ballot, candidate_id="no-such-candidate")
        assert outcome.code == "INVALID_CANDIDATE"
        assert outcome.status_code == 400

    async def test_failures_leave_audit_trail(self, db, voting_svc, audit_svc, ballot):
        await _cast(db, voting_svc, ballot, secret_code="ZZZ999")
        await _cast(db, voting_svc, ballot, position_id=ballot.other_position_id)
        async with db.get_session() as session:
            _, code_failures = await audit_svc.query(session, action="SECRET_CODE_FAILED")
            _, eligibility_failures = await audit_svc.query(
                session, action="VOTER_ELIGIBILITY_FAILED",
            )
        assert code_failures == 1
        assert eligibility_failures == 1

    async def test_failed_codes_feed_the_guard(self, db, voting_svc, guard, clock, ballot):
        await _cast(db, voting_svc, ballot, secret_code="ZZZ999")
        await _cast(db, voting_svc, ballot, secret_code="ZZZ998")
        count = await guard.store.count(
            "failed:10.0.0.8", clock.now().timestamp(), guard.settings.failed_attempt_window,
        )
        assert count == 2
