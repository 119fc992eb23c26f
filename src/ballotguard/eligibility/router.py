"""Eligibility grant administration API router."""

from fastapi import APIRouter, Depends, HTTPException, Request

from ballotguard.common.exceptions import BallotguardError
from ballotguard.common.security import build_request_context, require_api_key
from ballotguard.eligibility.schemas import (
    GrantCreate,
    GrantResponse,
    GrantScopeChange,
    GrantStatusChange,
)

router = APIRouter(dependencies=[Depends(require_api_key)])


def _get_service():
    from ballotguard.deps import get_eligibility_service
    return get_eligibility_service()


def _get_db():
    from ballotguard.deps import get_db
    return get_db()


@router.post(
    "/elections/{election_id}/grants", response_model=GrantResponse, status_code=201,
)
async def create_grant(election_id: str, body: GrantCreate, request: Request):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            grant = await svc.grant(
                session,
                body.voter_id,
                election_id,
                body.position_ids,
                granted_by=body.granted_by,
                context=build_request_context(request),
            )
            return GrantResponse.model_validate(grant)
    except BallotguardError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/grants/{grant_id}/positions", response_model=GrantResponse)
async def change_scope(grant_id: str, body: GrantScopeChange, request: Request):
    svc = _get_service()
    db = _get_db()
    context = build_request_context(request)
    try:
        async with db.get_session() as session:
            grant = None
            for position_id in body.add:
                grant = await svc.add_position(session, grant_id, position_id, body.by, context)
            for position_id in body.remove:
                grant = await svc.remove_position(session, grant_id, position_id, body.by, context)
            if grant is None:
                grant = await svc.require_grant(session, grant_id)
            return GrantResponse.model_validate(grant)
    except BallotguardError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/grants/{grant_id}/{action}", response_model=GrantResponse)
async def change_status(
    grant_id: str, action: str, body: GrantStatusChange, request: Request,
):
    svc = _get_service()
    db = _get_db()
    context = build_request_context(request)
    try:
        async with db.get_session() as session:
            if action == "suspend":
                grant = await svc.suspend(session, grant_id, body.by, body.reason, context)
            elif action == "revoke":
                grant = await svc.revoke(session, grant_id, body.by, body.reason, context)
            elif action == "reactivate":
                grant = await svc.reactivate(session, grant_id, body.by, context)
            else:
                raise HTTPException(status_code=404, detail=f"Unknown action '{action}'")
            return GrantResponse.model_validate(grant)
    except BallotguardError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
