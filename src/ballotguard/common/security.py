"""API key authentication and request metadata extraction."""

import hashlib
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from fastapi import Header, HTTPException, Request

ANONYMOUS_ACTOR = "00000000-0000-0000-0000-000000000000"


@dataclass
class RequestContext:
    """Request metadata carried into audit entries and the rate guard."""
    ip_address: str = "unknown"
    user_agent: str = ""
    device_fingerprint: str = ""
    session_id: Optional[str] = None
    actor_id: Optional[str] = None
    actor_role: Optional[str] = None
    location: dict[str, Any] = field(default_factory=dict)

    @property
    def actor(self) -> str:
        return self.actor_id or ANONYMOUS_ACTOR

    def as_meta(self) -> dict[str, Any]:
        meta: dict[str, Any] = {
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "device_fingerprint": self.device_fingerprint,
        }
        if self.session_id:
            meta["session_id"] = self.session_id
        if self.location:
            meta["location"] = self.location
        return meta


def device_fingerprint(ip: str, user_agent: str, accept_language: str = "") -> str:
    """Stable fingerprint of the client: sha256 of ip|user-agent|language."""
    raw = f"{ip}|{user_agent}|{accept_language}"
    return hashlib.sha256(raw.encode()).hexdigest()


def client_ip(request: Request, trusted_proxies: Iterable[str] = ()) -> str:
    """Address of the client that sent the request.

    X-Forwarded-For is only consulted when the socket peer is a trusted
    proxy. The chain is walked from the right and the first hop that is not
    itself a trusted proxy wins, so a client cannot pick its own address by
    prepending entries.
    """
    peer = request.client.host if request.client else None
    trusted = set(trusted_proxies)
    if peer is None:
        return "unknown"
    if peer not in trusted:
        return peer
    forwarded = request.headers.get("x-forwarded-for", "")
    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop not in trusted:
            return hop
    return hops[0] if hops else peer


def build_request_context(
    request: Request,
    actor_id: Optional[str] = None,
    actor_role: Optional[str] = None,
) -> RequestContext:
    """Resolve a RequestContext from an incoming request.

    The actor comes from the caller, who knows how the request was
    authenticated; identity headers sent by the client are not trusted.
    """
    from ballotguard.common.config import get_settings

    ip = client_ip(request, get_settings().trusted_proxies)
    ua = request.headers.get("user-agent", "")
    location = {}
    country = request.headers.get("x-geo-country")
    if country:
        location["country"] = country
    return RequestContext(
        ip_address=ip,
        user_agent=ua,
        device_fingerprint=device_fingerprint(
            ip, ua, request.headers.get("accept-language", "")
        ),
        session_id=request.headers.get("x-session-id"),
        actor_id=actor_id,
        actor_role=actor_role,
        location=location,
    )


async def require_api_key(
    x_ballotguard_api_key: str = Header(..., alias="X-Ballotguard-Api-Key"),
) -> str:
    """FastAPI dependency that validates admin API key from header."""
    from ballotguard.common.config import get_settings

    settings = get_settings()
    if x_ballotguard_api_key != settings.api_key:
        raise HTTPException(status_code=403, detail="Invalid API key")
    return x_ballotguard_api_key
