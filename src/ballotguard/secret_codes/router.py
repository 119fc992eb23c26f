"""Secret code administration API router."""

from fastapi import APIRouter, Depends, HTTPException, Request

from ballotguard.common.exceptions import BallotguardError
from ballotguard.common.security import build_request_context, require_api_key
from ballotguard.secret_codes.schemas import (
    DeactivateCodeRequest,
    IssueCodeRequest,
    IssueCodeResponse,
    ReactivateCodeRequest,
    SecretCodeResponse,
    SecretCodeStats,
)

router = APIRouter(dependencies=[Depends(require_api_key)])


def _get_service():
    from ballotguard.deps import get_secret_code_service
    return get_secret_code_service()


def _get_db():
    from ballotguard.deps import get_db
    return get_db()


@router.post(
    "/elections/{election_id}/secret-codes",
    response_model=IssueCodeResponse,
    status_code=201,
)
async def issue_code(election_id: str, body: IssueCodeRequest, request: Request):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            record, plaintext = await svc.issue(
                session,
                body.voter_id,
                election_id,
                code=body.code,
                issued_by=body.issued_by,
                context=build_request_context(request),
            )
            return IssueCodeResponse(
                id=record.id,
                voter_id=record.voter_id,
                election_id=record.election_id,
                code=plaintext,
            )
    except BallotguardError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/elections/{election_id}/secret-codes/stats", response_model=SecretCodeStats,
)
async def code_statistics(election_id: str):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return SecretCodeStats(**await svc.statistics(session, election_id))


@router.post("/secret-codes/{code_id}/deactivate", response_model=SecretCodeResponse)
async def deactivate_code(code_id: str, body: DeactivateCodeRequest, request: Request):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            record = await svc.deactivate(
                session, code_id, body.by, body.reason,
                context=build_request_context(request),
            )
            return SecretCodeResponse.model_validate(record)
    except BallotguardError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/secret-codes/{code_id}/reactivate", response_model=SecretCodeResponse)
async def reactivate_code(code_id: str, body: ReactivateCodeRequest, request: Request):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            record = await svc.reactivate(
                session, code_id, body.by, context=build_request_context(request),
            )
            return SecretCodeResponse.model_validate(record)
    except BallotguardError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
