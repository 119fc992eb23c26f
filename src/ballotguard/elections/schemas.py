"""Pydantic schemas for election record endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ElectionCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    status: str = "draft"
    start_at: datetime
    end_at: datetime
    registration_deadline: Optional[datetime] = None
    nomination_deadline: Optional[datetime] = None
    results_end: Optional[datetime] = None
    require_voter_verification: bool = False


class ElectionResponse(BaseModel):
    id: str
    title: str
    status: str
    current_phase: str
    start_at: datetime
    end_at: datetime
    registration_deadline: Optional[datetime] = None
    nomination_deadline: Optional[datetime] = None
    results_end: Optional[datetime] = None
    provisional_results_sent: bool = False
    last_reconciled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PositionCreate(BaseModel):
    title: str = Field(..., min_length=1)
    order: int = 0


class PositionResponse(BaseModel):
    id: str
    election_id: str
    title: str
    order: int

    model_config = {"from_attributes": True}


class CandidateCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = ""
    status: str = "approved"


class CandidateResponse(BaseModel):
    id: str
    position_id: str
    name: str
    status: str

    model_config = {"from_attributes": True}


class VoterCreate(BaseModel):
    voter_number: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    email: str = ""


class VoterResponse(BaseModel):
    id: str
    voter_number: str
    name: str

    model_config = {"from_attributes": True}
