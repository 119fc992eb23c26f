"""Vote API router."""

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from ballotguard.common.exceptions import BallotguardError
from ballotguard.common.security import RequestContext, build_request_context, require_api_key
from ballotguard.guard.dependency import enforce_rate_guard
from ballotguard.votes.schemas import (
    CastVoteRequest,
    CastVoteResponse,
    ResolveDisputeRequest,
    TransitionResponse,
    VoteActionRequest,
    VoteResponse,
)

router = APIRouter()


def _get_voting_service():
    from ballotguard.deps import get_voting_service
    return get_voting_service()


def _get_service():
    from ballotguard.deps import get_vote_service
    return get_vote_service()


def _get_db():
    from ballotguard.deps import get_db
    return get_db()


@router.post("/votes", response_model=CastVoteResponse)
async def cast_vote(
    body: CastVoteRequest,
    response: Response,
    context: RequestContext = Depends(enforce_rate_guard),
):
    svc = _get_voting_service()
    db = _get_db()

    async def _cast(session):
        return await svc.cast(
            session,
            body.voter_id,
            body.election_id,
            body.position_id,
            body.candidate_id,
            body.secret_code,
            context,
        )

    outcome = await db.run(_cast)
    response.status_code = outcome.status_code
    if not outcome.success:
        return CastVoteResponse(success=False, code=outcome.code, message=outcome.message)
    return CastVoteResponse(
        success=True,
        code=outcome.code,
        message=outcome.message,
        vote_id=outcome.vote.id,
        receipt_number=outcome.vote.receipt_number,
        receipt_hash=outcome.vote.receipt_hash,
    )


@router.get("/votes/{vote_id}", response_model=VoteResponse)
async def get_vote(vote_id: str, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            vote = await svc.get_vote(session, vote_id)
            return VoteResponse.model_validate(vote)
    except BallotguardError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


async def _apply(vote_id: str, request: Request, operation) -> TransitionResponse:
    svc = _get_service()
    db = _get_db()
    context = build_request_context(request)
    try:
        async with db.get_session() as session:
            result = await operation(svc, session, context)
            return TransitionResponse(
                outcome=result.outcome, vote=VoteResponse.model_validate(result.vote),
            )
    except BallotguardError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/votes/{vote_id}/verify", response_model=TransitionResponse)
async def verify_vote(
    vote_id: str, body: VoteActionRequest, request: Request, _=Depends(require_api_key),
):
    return await _apply(
        vote_id, request,
        lambda svc, session, ctx: svc.verify(session, vote_id, body.by, context=ctx),
    )


@router.post("/votes/{vote_id}/count", response_model=TransitionResponse)
async def count_vote(
    vote_id: str, body: VoteActionRequest, request: Request, _=Depends(require_api_key),
):
    return await _apply(
        vote_id, request,
        lambda svc, session, ctx: svc.count(session, vote_id, body.by, context=ctx),
    )


@router.post("/votes/{vote_id}/dispute", response_model=TransitionResponse)
async def dispute_vote(
    vote_id: str, body: VoteActionRequest, request: Request, _=Depends(require_api_key),
):
    return await _apply(
        vote_id, request,
        lambda svc, session, ctx: svc.dispute(
            session, vote_id, body.by, body.reason, context=ctx,
        ),
    )


@router.post("/votes/{vote_id}/resolve", response_model=TransitionResponse)
async def resolve_dispute(
    vote_id: str, body: ResolveDisputeRequest, request: Request, _=Depends(require_api_key),
):
    return await _apply(
        vote_id, request,
        lambda svc, session, ctx: svc.resolve_dispute(
            session, vote_id, body.by, body.resolution, uphold=body.uphold, context=ctx,
        ),
    )


@router.post("/votes/{vote_id}/invalidate", response_model=TransitionResponse)
async def invalidate_vote(
    vote_id: str, body: VoteActionRequest, request: Request, _=Depends(require_api_key),
):
    return await _apply(
        vote_id, request,
        lambda svc, session, ctx: svc.invalidate(
            session, vote_id, body.by, body.reason, context=ctx,
        ),
    )
