"""Audit log API router (read-only)."""

import math
from datetime import datetime

from fastapi import APIRouter, Depends, Query

from ballotguard.audit.schemas import AuditEntryResponse, AuditStatistics, AuditVerification
from ballotguard.common.schemas import PaginatedResponse, PaginationParams
from ballotguard.common.security import require_api_key

router = APIRouter()


def _get_service():
    from ballotguard.deps import get_audit_service
    return get_audit_service()


def _get_db():
    from ballotguard.deps import get_db
    return get_db()


@router.get("/audit", response_model=PaginatedResponse)
async def list_audit_entries(
    actor: str | None = Query(None),
    action: str | None = Query(None),
    category: str | None = Query(None),
    election_id: str | None = Query(None),
    success: bool | None = Query(None),
    risk_level: str | None = Query(None),
    since: datetime | None = Query(None),
    until: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    _=Depends(require_api_key),
):
    params = PaginationParams(page=page, page_size=page_size)
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        entries, total = await svc.query(
            session,
            actor=actor,
            action=action,
            category=category,
            election_id=election_id,
            success=success,
            risk_level=risk_level,
            since=since,
            until=until,
            limit=params.page_size,
            offset=params.offset,
        )
        return PaginatedResponse(
            items=[AuditEntryResponse.model_validate(e).model_dump(mode="json") for e in entries],
            total=total,
            page=params.page,
            page_size=params.page_size,
            pages=math.ceil(total / params.page_size) if total else 0,
        )


@router.get("/audit/statistics", response_model=AuditStatistics)
async def audit_statistics(
    election_id: str | None = Query(None),
    since: datetime | None = Query(None),
    _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        stats = await svc.statistics(session, election_id=election_id, since=since)
        return AuditStatistics(**stats)


@router.get("/audit/verify", response_model=AuditVerification)
async def verify_audit_entries(
    election_id: str | None = Query(None),
    _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        result = await svc.verify_entries(session, election_id=election_id)
        return AuditVerification(**result)
