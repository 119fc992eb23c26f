"""Integration tests for secret code administration."""

from datetime import datetime, timedelta, timezone


class TestSecretCodeRouter:
    async def _setup(self, client, admin_headers):
        """Create election + voter."""
        now = datetime.now(timezone.utc)
        election = (await client.post("/elections", json={
            "title": "Board Election",
            "start_at": now.isoformat(),
            "end_at": (now + timedelta(hours=8)).isoformat(),
        }, headers=admin_headers)).json()
        voter = (await client.post("/voters", json={
            "voter_number": "V-0001", "name": "Jo Voter",
        }, headers=admin_headers)).json()
        return election, voter

    async def test_issue_generated_code(self, client, admin_headers):
        election, voter = await self._setup(client, admin_headers)
        resp = await client.post(
            f"/elections/{election['id']}/secret-codes",
            json={"voter_id": voter["id"]}, headers=admin_headers,
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["voter_id"] == voter["id"]
        assert len(data["code"]) == 6
        assert data["code"].isupper() or data["code"].isdigit()

    async def test_duplicate_code_rejected(self, client, admin_headers):
        election, voter = await self._setup(client, admin_headers)
        url = f"/elections/{election['id']}/secret-codes"
        await client.post(url, json={"voter_id": voter["id"]}, headers=admin_headers)
        resp = await client.post(url, json={"voter_id": voter["id"]}, headers=admin_headers)
        assert resp.status_code == 409

    async def test_malformed_code_rejected(self, client, admin_headers):
        election, voter = await self._setup(client, admin_headers)
        resp = await client.post(
            f"/elections/{election['id']}/secret-codes",
            json={"voter_id": voter["id"], "code": "abc"}, headers=admin_headers,
        )
        assert resp.status_code == 400

    async def test_unknown_election(self, client, admin_headers):
        _, voter = await self._setup(client, admin_headers)
        resp = await client.post(
            "/elections/missing/secret-codes",
            json={"voter_id": voter["id"]}, headers=admin_headers,
        )
        assert resp.status_code == 404

    async def test_statistics(self, client, admin_headers):
        election, voter = await self._setup(client, admin_headers)
        await client.post(
            f"/elections/{election['id']}/secret-codes",
            json={"voter_id": voter["id"]}, headers=admin_headers,
        )
        resp = await client.get(
            f"/elections/{election['id']}/secret-codes/stats", headers=admin_headers,
        )
        assert resp.status_code == 200
        stats = resp.json()
        assert stats["total_codes"] == 1
        assert stats["active_codes"] == 1
        assert stats["locked_codes"] == 0
        assert stats["total_uses"] == 0

    async def test_deactivate_and_reactivate(self, client, admin_headers):
        election, voter = await self._setup(client, admin_headers)
        code = (await client.post(
            f"/elections/{election['id']}/secret-codes",
            json={"voter_id": voter["id"]}, headers=admin_headers,
        )).json()

        resp = await client.post(
            f"/secret-codes/{code['id']}/deactivate",
            json={"by": "officer-1", "reason": "reported lost"}, headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False

        resp = await client.post(
            f"/secret-codes/{code['id']}/reactivate",
            json={"by": "officer-1"}, headers=admin_headers,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["is_active"] is True
        assert data["attempts"] == 0
        assert data["is_locked"] is False

        resp = await client.get(
            f"/audit?election_id={election['id']}&category=ADMIN", headers=admin_headers,
        )
        actions = sorted(e["action"] for e in resp.json()["items"])
        assert actions == ["SECRET_CODE_DEACTIVATED", "SECRET_CODE_REACTIVATED"]

    async def test_unknown_code(self, client, admin_headers):
        resp = await client.post(
            "/secret-codes/missing/reactivate", json={"by": "officer-1"}, headers=admin_headers,
        )
        assert resp.status_code == 404

    async def test_requires_api_key(self, client, admin_headers):
        election, _ = await self._setup(client, admin_headers)
        resp = await client.get(
            f"/elections/{election['id']}/secret-codes/stats",
            headers={"X-Ballotguard-Api-Key": "nope"},
        )
        assert resp.status_code == 403
