"""Tests for notification rendering and delivery."""

import json

import httpx
import pytest

from ballotguard.notifications.dispatcher import (
    EmailDispatcher,
    LoggingDispatcher,
    NotificationDispatcher,
    build_dispatcher,
    notify_quietly,
    render,
)


def _mock_client(monkeypatch, handler):
    """Route every httpx.AsyncClient created by the dispatcher through ``handler``."""
    real_client = httpx.AsyncClient
    requests = []

    def recording(request):
        requests.append(request)
        return handler(request)

    monkeypatch.setattr(
        httpx, "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(recording)),
    )
    return requests


class TestRender:
    def test_provisional_results(self):
        subject, body = render("provisional_results", {
            "election_title": "Board Election",
            "candidate_name": "Ada Obi",
            "position_title": "Chair",
            "vote_count": 12,
            "total_votes": 20,
            "percentage": 60.0,
        })
        assert subject == "Provisional results: Board Election"
        assert "12 of 20 votes (60.0%)" in body

    def test_lockout_notice(self):
        subject, body = render("secret_code_locked", {"locked_until": "2026-03-10T12:15:00+00:00"})
        assert "locked" in subject
        assert "2026-03-10T12:15:00+00:00" in body

    def test_deadline_reminder(self):
        subject, body = render("deadline_reminder", {
            "recipient_name": "Jo Voter",
            "election_title": "Board Election",
            "deadline_type": "voting_end",
            "deadline_at": "2026-03-11T18:00:00+00:00",
        })
        assert subject == "Voting closes soon: Board Election"
        assert body.startswith("Hi Jo Voter,")
        assert "2026-03-11T18:00:00+00:00" in body

    def test_deadline_reminder_unknown_kind(self):
        subject, _ = render("deadline_reminder", {"election_title": "Board Election"})
        assert subject == "Upcoming election deadline: Board Election"

    def test_unknown_template(self):
        with pytest.raises(ValueError):
            render("birthday", {})


class TestDispatchers:
    def test_build_dispatcher(self, settings):
        assert isinstance(build_dispatcher(settings), LoggingDispatcher)
        email = build_dispatcher(settings.model_copy(update={"notify_provider": "sendgrid"}))
        assert isinstance(email, EmailDispatcher)

    async def test_logging_dispatcher_records(self):
        dispatcher = LoggingDispatcher()
        assert await dispatcher.send("jo@example.com", "vote_confirmation", {"receipt_number": "VOTE-1"})
        assert dispatcher.sent == [("jo@example.com", "vote_confirmation", {"receipt_number": "VOTE-1"})]

    async def test_sendgrid_delivery(self, monkeypatch):
        requests = _mock_client(monkeypatch, lambda request: httpx.Response(202))
        dispatcher = EmailDispatcher("sendgrid", "sg-key", "office@example.com", "Office")
        assert await dispatcher.send("jo@example.com", "vote_confirmation", {})
        assert requests[0].url == "https://api.sendgrid.com/v3/mail/send"
        assert requests[0].headers["Authorization"] == "Bearer sg-key"
        payload = json.loads(requests[0].content)
        assert payload["personalizations"] == [{"to": [{"email": "jo@example.com"}]}]
        assert payload["subject"] == "Your vote has been recorded"

    async def test_resend_error_status(self, monkeypatch):
        _mock_client(monkeypatch, lambda request: httpx.Response(500, text="oops"))
        dispatcher = EmailDispatcher("resend", "re-key", "office@example.com", "Office")
        assert await dispatcher.send("jo@example.com", "vote_confirmation", {}) is False

    async def test_transport_error(self, monkeypatch):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        _mock_client(monkeypatch, refuse)
        dispatcher = EmailDispatcher("resend", "re-key", "office@example.com", "Office")
        assert await dispatcher.send("jo@example.com", "vote_confirmation", {}) is False

    async def test_unknown_provider(self):
        dispatcher = EmailDispatcher("fax", "", "office@example.com", "Office")
        assert await dispatcher.send("jo@example.com", "vote_confirmation", {}) is False


class TestNotifyQuietly:
    async def test_skips_without_recipient(self):
        dispatcher = LoggingDispatcher()
        assert await notify_quietly(dispatcher, "", "vote_confirmation", {}) is False
        assert await notify_quietly(None, "jo@example.com", "vote_confirmation", {}) is False
        assert dispatcher.sent == []

    async def test_swallows_dispatcher_errors(self):
        class Exploding(NotificationDispatcher):
            async def send(self, recipient, template, data):
                raise RuntimeError("smtp down")

        assert await notify_quietly(Exploding(), "jo@example.com", "vote_confirmation", {}) is False
