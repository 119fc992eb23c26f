"""Integration tests for the voting endpoints."""

from datetime import datetime, timedelta, timezone


async def _setup(client, admin_headers, code="ABC123"):
    """Create an election with one granted voter and open it for voting."""
    now = datetime.now(timezone.utc)
    election = (await client.post("/elections", json={
        "title": "Board Election",
        "status": "scheduled",
        "start_at": (now - timedelta(hours=1)).isoformat(),
        "end_at": (now + timedelta(hours=8)).isoformat(),
    }, headers=admin_headers)).json()
    position = (await client.post(
        f"/elections/{election['id']}/positions", json={"title": "Chair"}, headers=admin_headers,
    )).json()
    ada = (await client.post(
        f"/positions/{position['id']}/candidates",
        json={"name": "Ada Obi", "email": "ada@example.com"}, headers=admin_headers,
    )).json()
    voter = (await client.post("/voters", json={
        "voter_number": "V-0001", "name": "Jo Voter", "email": "jo@example.com",
    }, headers=admin_headers)).json()
    await client.post(f"/elections/{election['id']}/grants", json={
        "voter_id": voter["id"], "position_ids": [position["id"]],
    }, headers=admin_headers)
    await client.post(f"/elections/{election['id']}/secret-codes", json={
        "voter_id": voter["id"], "code": code,
    }, headers=admin_headers)

    from ballotguard.deps import get_reconciler
    await get_reconciler().tick()

    return {
        "voter_id": voter["id"],
        "election_id": election["id"],
        "position_id": position["id"],
        "candidate_id": ada["id"],
        "secret_code": code,
    }


class TestCastVote:
    async def test_cast_vote(self, client, admin_headers):
        ballot = await _setup(client, admin_headers)
        resp = await client.post("/votes", json=ballot)
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["receipt_number"].startswith("VOTE-")
        assert len(data["receipt_hash"]) == 32

    async def test_second_vote_rejected(self, client, admin_headers):
        ballot = await _setup(client, admin_headers)
        await client.post("/votes", json=ballot)
        resp = await client.post("/votes", json=ballot)
        assert resp.status_code == 409
        assert resp.json()["code"] == "ALREADY_VOTED"

    async def test_wrong_code(self, client, admin_headers):
        ballot = await _setup(client, admin_headers)
        resp = await client.post("/votes", json=dict(ballot, secret_code="ZZZ999"))
        assert resp.status_code == 403
        assert resp.json() == {
            "success": False,
            "code": "INVALID_SECRET_CODE",
            "message": "Unable to cast vote",
            "vote_id": None,
            "receipt_number": None,
            "receipt_hash": None,
        }

    async def test_lockout(self, client, admin_headers):
        ballot = await _setup(client, admin_headers)
        for _ in range(2):
            await client.post("/votes", json=dict(ballot, secret_code="ZZZ999"))
        resp = await client.post("/votes", json=dict(ballot, secret_code="ZZZ999"))
        assert resp.status_code == 423
        assert resp.json()["code"] == "LOCKED"

    async def test_missing_fields(self, client, admin_headers):
        resp = await client.post("/votes", json={"voter_id": "v-1"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "MISSING_FIELDS"

    async def test_cast_is_audited(self, client, admin_headers):
        ballot = await _setup(client, admin_headers)
        await client.post("/votes", json=ballot)
        resp = await client.get(
            f"/audit?action=VOTE_CAST&election_id={ballot['election_id']}",
            headers=admin_headers,
        )
        assert resp.status_code == 200
        items = resp.json()["items"]
        assert len(items) == 1
        assert items[0]["actor_id"] == ballot["voter_id"]
        assert items[0]["ip_address"] == "127.0.0.1"


class TestRateGuard:
    async def test_rate_limited(self, client, admin_headers):
        from ballotguard.deps import get_rate_guard
        guard = get_rate_guard()
        guard.settings = guard.settings.model_copy(update={"rate_limit_max_requests": 2})

        for _ in range(2):
            resp = await client.post("/votes", json={"voter_id": "v-1"})
            assert resp.status_code == 400
        resp = await client.post("/votes", json={"voter_id": "v-1"})
        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "900"
        detail = resp.json()["detail"]
        assert detail["code"] == "RATE_LIMITED"
        assert detail["retry_after"] == 900

    async def test_rotating_headers_share_one_window(self, client):
        from ballotguard.deps import get_rate_guard
        guard = get_rate_guard()
        guard.settings = guard.settings.model_copy(update={"rate_limit_max_requests": 3})

        statuses = []
        for i in range(4):
            resp = await client.post("/votes", json={"voter_id": "v-1"}, headers={
                "X-Forwarded-For": f"198.51.100.{i}",
                "X-Actor-Id": f"someone-{i}",
                "X-Actor-Role": "admin",
            })
            statuses.append(resp.status_code)
        assert statuses == [400, 400, 400, 429]

    async def test_windows_are_per_voter(self, client):
        from ballotguard.deps import get_rate_guard
        guard = get_rate_guard()
        guard.settings = guard.settings.model_copy(update={"rate_limit_max_requests": 2})

        for _ in range(2):
            await client.post("/votes", json={"voter_id": "v-1"})
        assert (await client.post("/votes", json={"voter_id": "v-1"})).status_code == 429
        assert (await client.post("/votes", json={"voter_id": "v-2"})).status_code == 400

    async def test_forwarded_for_honoured_from_trusted_proxy(self, client, monkeypatch):
        from ballotguard.common.config import get_settings
        from ballotguard.deps import get_rate_guard
        guard = get_rate_guard()
        guard.settings = guard.settings.model_copy(update={"rate_limit_max_requests": 1})
        monkeypatch.setattr(get_settings(), "trusted_proxies", ["127.0.0.1"])

        for i in range(3):
            resp = await client.post(
                "/votes", json={"voter_id": "v-1"},
                headers={"X-Forwarded-For": f"198.51.100.{i}"},
            )
            assert resp.status_code == 400
        resp = await client.post(
            "/votes", json={"voter_id": "v-1"},
            headers={"X-Forwarded-For": "198.51.100.0"},
        )
        assert resp.status_code == 429

    async def test_guard_failure_fails_open(self, client, monkeypatch):
        from ballotguard.deps import get_rate_guard

        async def broken(session, context):
            raise RuntimeError("counter store down")

        monkeypatch.setattr(get_rate_guard(), "admit", broken)
        resp = await client.post("/votes", json={"voter_id": "v-1"})
        assert resp.status_code == 400

    async def test_guard_failure_fails_closed_when_configured(self, client, monkeypatch):
        from ballotguard.common.config import get_settings
        from ballotguard.deps import get_rate_guard

        async def broken(session, context):
            raise RuntimeError("counter store down")

        monkeypatch.setattr(get_rate_guard(), "admit", broken)
        monkeypatch.setattr(get_settings(), "rate_guard_fail_open", False)
        resp = await client.post("/votes", json={"voter_id": "v-1"})
        assert resp.status_code == 503


class TestVoteAdministration:
    async def _cast(self, client, admin_headers):
        ballot = await _setup(client, admin_headers)
        resp = await client.post("/votes", json=ballot)
        return resp.json()["vote_id"]

    async def test_get_vote(self, client, admin_headers):
        vote_id = await self._cast(client, admin_headers)
        resp = await client.get(f"/votes/{vote_id}", headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "verified"
        assert sorted(t["action"] for t in data["trail"]) == ["VOTE_CAST", "VOTE_VERIFIED"]

    async def test_requires_api_key(self, client, admin_headers):
        vote_id = await self._cast(client, admin_headers)
        resp = await client.get(
            f"/votes/{vote_id}", headers={"X-Ballotguard-Api-Key": "wrong"},
        )
        assert resp.status_code == 403

    async def test_unknown_vote(self, client, admin_headers):
        resp = await client.get("/votes/missing", headers=admin_headers)
        assert resp.status_code == 404

    async def test_dispute_lifecycle(self, client, admin_headers):
        vote_id = await self._cast(client, admin_headers)
        resp = await client.post(
            f"/votes/{vote_id}/count", json={"by": "teller-1"}, headers=admin_headers,
        )
        assert resp.json()["outcome"] == "applied"
        assert resp.json()["vote"]["status"] == "counted"

        resp = await client.post(
            f"/votes/{vote_id}/dispute",
            json={"by": "observer-1", "reason": "wrong booth"}, headers=admin_headers,
        )
        assert resp.json()["vote"]["status"] == "disputed"

        resp = await client.post(
            f"/votes/{vote_id}/resolve",
            json={"by": "officer-1", "resolution": "booth was correct"}, headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["vote"]["status"] == "counted"
        assert resp.json()["vote"]["dispute_status"] == "rejected"

    async def test_repeat_transition_is_noop(self, client, admin_headers):
        vote_id = await self._cast(client, admin_headers)
        resp = await client.post(
            f"/votes/{vote_id}/verify", json={"by": "officer-1"}, headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["outcome"] == "noop"

    async def test_invalid_transition(self, client, admin_headers):
        vote_id = await self._cast(client, admin_headers)
        await client.post(
            f"/votes/{vote_id}/invalidate",
            json={"by": "officer-1", "reason": "spoiled"}, headers=admin_headers,
        )
        resp = await client.post(
            f"/votes/{vote_id}/count", json={"by": "teller-1"}, headers=admin_headers,
        )
        assert resp.status_code == 409
