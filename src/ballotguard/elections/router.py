"""Election records API router.

Phase and status are read-only here; only the scheduler moves them.
"""

from fastapi import APIRouter, Depends, HTTPException

from ballotguard.common.exceptions import BallotguardError
from ballotguard.common.security import require_api_key
from ballotguard.elections.schemas import (
    CandidateCreate,
    CandidateResponse,
    ElectionCreate,
    ElectionResponse,
    PositionCreate,
    PositionResponse,
    VoterCreate,
    VoterResponse,
)

router = APIRouter()


def _get_service():
    from ballotguard.deps import get_election_service
    return get_election_service()


def _get_db():
    from ballotguard.deps import get_db
    return get_db()


@router.post("/elections", response_model=ElectionResponse, status_code=201)
async def create_election(body: ElectionCreate, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            election = await svc.create_election(session, **body.model_dump())
            return ElectionResponse.model_validate(election)
    except BallotguardError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/elections/{election_id}", response_model=ElectionResponse)
async def get_election(election_id: str):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        election = await svc.get_election(session, election_id)
        if election is None:
            raise HTTPException(status_code=404, detail="Election not found")
        return ElectionResponse.model_validate(election)


@router.post(
    "/elections/{election_id}/positions",
    response_model=PositionResponse,
    status_code=201,
)
async def add_position(
    election_id: str, body: PositionCreate, _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            position = await svc.add_position(
                session, election_id, body.title, order=body.order,
            )
            return PositionResponse.model_validate(position)
    except BallotguardError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/positions/{position_id}/candidates",
    response_model=CandidateResponse,
    status_code=201,
)
async def add_candidate(
    position_id: str, body: CandidateCreate, _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            candidate = await svc.add_candidate(
                session, position_id, body.name, email=body.email, status=body.status,
            )
            return CandidateResponse.model_validate(candidate)
    except BallotguardError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/voters", response_model=VoterResponse, status_code=201)
async def register_voter(body: VoterCreate, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        voter = await svc.register_voter(
            session, body.voter_number, body.name, email=body.email,
        )
        return VoterResponse.model_validate(voter)
