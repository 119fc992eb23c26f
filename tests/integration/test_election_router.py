"""Integration tests for election records and the health check."""

from datetime import datetime, timedelta, timezone


def _window(**overrides):
    now = datetime.now(timezone.utc)
    body = {
        "title": "Board Election",
        "start_at": (now + timedelta(days=1)).isoformat(),
        "end_at": (now + timedelta(days=1, hours=8)).isoformat(),
    }
    body.update(overrides)
    return body


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["service"] == "ballotguard"


class TestElectionRouter:
    async def test_create_and_get(self, client, admin_headers):
        resp = await client.post("/elections", json=_window(), headers=admin_headers)
        assert resp.status_code == 201
        election = resp.json()
        assert election["status"] == "draft"
        assert election["current_phase"] == "registration"

        resp = await client.get(f"/elections/{election['id']}")
        assert resp.status_code == 200
        assert resp.json()["title"] == "Board Election"

    async def test_create_requires_api_key(self, client):
        resp = await client.post("/elections", json=_window())
        assert resp.status_code == 422
        resp = await client.post(
            "/elections", json=_window(), headers={"X-Ballotguard-Api-Key": "nope"},
        )
        assert resp.status_code == 403

    async def test_end_before_start_rejected(self, client, admin_headers):
        now = datetime.now(timezone.utc)
        resp = await client.post("/elections", json=_window(
            start_at=now.isoformat(), end_at=(now - timedelta(hours=1)).isoformat(),
        ), headers=admin_headers)
        assert resp.status_code == 400

    async def test_out_of_order_deadlines_rejected(self, client, admin_headers):
        now = datetime.now(timezone.utc)
        start = now + timedelta(days=1)
        for overrides in (
            {"registration_deadline": (start + timedelta(hours=1)).isoformat()},
            {"nomination_deadline": (start + timedelta(hours=1)).isoformat()},
            {
                "registration_deadline": (now + timedelta(hours=12)).isoformat(),
                "nomination_deadline": (now + timedelta(hours=6)).isoformat(),
            },
            {"results_end": (start + timedelta(hours=1)).isoformat()},
        ):
            resp = await client.post(
                "/elections", json=_window(**overrides), headers=admin_headers,
            )
            assert resp.status_code == 400, overrides

    async def test_ordered_deadlines_accepted(self, client, admin_headers):
        now = datetime.now(timezone.utc)
        resp = await client.post("/elections", json=_window(
            registration_deadline=(now + timedelta(hours=6)).isoformat(),
            nomination_deadline=(now + timedelta(hours=12)).isoformat(),
            results_end=(now + timedelta(days=3)).isoformat(),
        ), headers=admin_headers)
        assert resp.status_code == 201

    async def test_unknown_election(self, client):
        resp = await client.get("/elections/missing")
        assert resp.status_code == 404

    async def test_positions_and_candidates(self, client, admin_headers):
        election = (await client.post("/elections", json=_window(), headers=admin_headers)).json()
        resp = await client.post(
            f"/elections/{election['id']}/positions",
            json={"title": "Chair", "order": 1}, headers=admin_headers,
        )
        assert resp.status_code == 201
        position = resp.json()
        assert position["election_id"] == election["id"]

        resp = await client.post(
            f"/positions/{position['id']}/candidates",
            json={"name": "Ada Obi", "status": "pending"}, headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json()["status"] == "pending"

    async def test_position_for_unknown_election(self, client, admin_headers):
        resp = await client.post(
            "/elections/missing/positions", json={"title": "Chair"}, headers=admin_headers,
        )
        assert resp.status_code == 404

    async def test_scheduler_opens_election(self, client, admin_headers):
        now = datetime.now(timezone.utc)
        election = (await client.post("/elections", json=_window(
            status="scheduled",
            start_at=(now - timedelta(minutes=5)).isoformat(),
            end_at=(now + timedelta(hours=2)).isoformat(),
        ), headers=admin_headers)).json()

        from ballotguard.deps import get_reconciler
        report = await get_reconciler().tick()
        assert report.transitioned == 1

        resp = await client.get(f"/elections/{election['id']}")
        assert resp.json()["status"] == "active"
        assert resp.json()["current_phase"] == "voting"
