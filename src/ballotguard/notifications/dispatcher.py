"""Notification dispatch: SendGrid / Resend email, or log-only."""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

_DEADLINE_LINES = {
    "registration": (
        "Registration deadline reminder",
        "Registration closes soon. Complete it to be eligible to vote.",
    ),
    "nomination": (
        "Nomination deadline reminder",
        "Candidate nominations close soon. Please make sure yours is complete.",
    ),
    "campaign_end": (
        "Campaign period ending",
        "The campaign period ends soon and voting will begin.",
    ),
    "voting_start": (
        "Voting opens soon",
        "Voting opens soon. Please cast your vote before it closes.",
    ),
    "voting_end": (
        "Voting closes soon",
        "Voting closes soon and you still have ballots to cast.",
    ),
}


def render(template: str, data: dict[str, Any]) -> tuple[str, str]:
    """Return (subject, body) for a known template."""
    if template == "provisional_results":
        subject = f"Provisional results: {data.get('election_title', 'election')}"
        body = (
            f"Hi {data.get('candidate_name', '')},\n\n"
            f"Voting has closed for {data.get('position_title', 'your position')}.\n"
            f"Provisional count: {data.get('vote_count', 0)} of "
            f"{data.get('total_votes', 0)} votes ({data.get('percentage', 0.0)}%).\n\n"
            "These figures are provisional until certified."
        )
    elif template == "secret_code_locked":
        subject = "Your voting code has been locked"
        body = (
            f"Hi {data.get('voter_name', '')},\n\n"
            "Your secret voting code was entered incorrectly too many times and "
            f"is locked until {data.get('locked_until', '')}.\n\n"
            "If this was not you, contact your election office."
        )
    elif template == "vote_confirmation":
        subject = "Your vote has been recorded"
        body = (
            f"Hi {data.get('voter_name', '')},\n\n"
            f"Your ballot for {data.get('position_title', 'the position')} was recorded.\n"
            f"Receipt: {data.get('receipt_number', '')} ({data.get('receipt_hash', '')})"
        )
    elif template == "deadline_reminder":
        kind = data.get("deadline_type", "")
        title = data.get("election_title", "the election")
        subject, line = _DEADLINE_LINES.get(
            kind, ("Upcoming election deadline", "An election deadline is approaching.")
        )
        subject = f"{subject}: {title}"
        body = (
            f"Hi {data.get('recipient_name', '')},\n\n"
            f"{line}\n"
            f"Deadline: {data.get('deadline_at', '')} (UTC)"
        )
    else:
        raise ValueError(f"Unknown notification template '{template}'")
    return subject, body


class NotificationDispatcher:
    """Delivers a rendered template to one recipient."""

    async def send(self, recipient: str, template: str, data: dict[str, Any]) -> bool:
        raise NotImplementedError


class LoggingDispatcher(NotificationDispatcher):
    """Log-only dispatcher, used when no provider is configured."""

    def __init__(self):
        self.sent: list[tuple[str, str, dict[str, Any]]] = []

    async def send(self, recipient: str, template: str, data: dict[str, Any]) -> bool:
        subject, _body = render(template, data)
        self.sent.append((recipient, template, data))
        logger.info("Notification for %s: %s", recipient, subject)
        return True


class EmailDispatcher(NotificationDispatcher):
    """Sends notification emails through SendGrid or Resend."""

    def __init__(
        self,
        provider: str,
        api_key: str,
        from_email: str,
        from_name: str,
    ):
        self.provider = provider.lower()  # "sendgrid" or "resend"
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name

    async def send(self, recipient: str, template: str, data: dict[str, Any]) -> bool:
        subject, body = render(template, data)
        if self.provider == "sendgrid":
            return await self._send_sendgrid(recipient, subject, body)
        elif self.provider == "resend":
            return await self._send_resend(recipient, subject, body)
        logger.warning("Unknown email provider '%s'; dropping %s", self.provider, template)
        return False

    async def _send_sendgrid(self, to: str, subject: str, body: str) -> bool:
        """Send via SendGrid v3 API."""
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    "https://api.sendgrid.com/v3/mail/send",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "personalizations": [{"to": [{"email": to}]}],
                        "from": {"email": self.from_email, "name": self.from_name},
                        "subject": subject,
                        "content": [{"type": "text/plain", "value": body}],
                    },
                    timeout=30,
                )
                if resp.status_code in (200, 202):
                    logger.info("SendGrid email sent to %s", to)
                    return True
                logger.warning("SendGrid error: %s %s", resp.status_code, resp.text)
                return False
        except httpx.HTTPError:
            logger.exception("SendGrid send failed")
            return False

    async def _send_resend(self, to: str, subject: str, body: str) -> bool:
        """Send via Resend API."""
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    "https://api.resend.com/emails",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": f"{self.from_name} <{self.from_email}>",
                        "to": [to],
                        "subject": subject,
                        "text": body,
                    },
                    timeout=30,
                )
                if resp.status_code in (200, 201):
                    logger.info("Resend email sent to %s", to)
                    return True
                logger.warning("Resend error: %s %s", resp.status_code, resp.text)
                return False
        except httpx.HTTPError:
            logger.exception("Resend send failed")
            return False


def build_dispatcher(settings) -> NotificationDispatcher:
    if settings.notify_provider:
        return EmailDispatcher(
            settings.notify_provider,
            settings.notify_api_key,
            settings.notify_from_email,
            settings.notify_from_name,
        )
    return LoggingDispatcher()


async def notify_quietly(
    dispatcher: NotificationDispatcher | None,
    recipient: str,
    template: str,
    data: dict[str, Any],
) -> bool:
    """Send a notification, logging instead of raising on failure."""
    if dispatcher is None or not recipient:
        return False
    try:
        return await dispatcher.send(recipient, template, data)
    except Exception:
        logger.exception("Notification '%s' to %s failed", template, recipient)
        return False
