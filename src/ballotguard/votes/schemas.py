"""Pydantic schemas for vote endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class CastVoteRequest(BaseModel):
    voter_id: str = ""
    election_id: str = ""
    position_id: str = ""
    candidate_id: str = ""
    secret_code: str = ""


class CastVoteResponse(BaseModel):
    success: bool
    code: str
    message: str
    vote_id: Optional[str] = None
    receipt_number: Optional[str] = None
    receipt_hash: Optional[str] = None


class VoteActionRequest(BaseModel):
    by: str = Field(..., min_length=1)
    reason: str = ""


class ResolveDisputeRequest(BaseModel):
    by: str = Field(..., min_length=1)
    resolution: str = Field(..., min_length=1)
    uphold: bool = False


class TrailEntryResponse(BaseModel):
    action: str
    actor: str
    detail: dict[str, Any] = {}
    created_at: datetime

    model_config = {"from_attributes": True}


class VoteResponse(BaseModel):
    id: str
    election_id: str
    position_id: str
    candidate_id: str
    voter_id: str
    status: str
    verified: bool
    verification_method: Optional[str] = None
    dispute_status: str
    dispute_reason: Optional[str] = None
    vote_hash: str
    receipt_hash: str
    receipt_number: str
    created_at: datetime
    trail: list[TrailEntryResponse] = []

    model_config = {"from_attributes": True}


class TransitionResponse(BaseModel):
    outcome: str
    vote: VoteResponse
