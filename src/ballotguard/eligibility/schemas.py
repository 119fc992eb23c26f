"""Pydantic schemas for eligibility grant endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class GrantCreate(BaseModel):
    voter_id: str = Field(..., min_length=1)
    position_ids: list[str] = Field(default_factory=list)
    granted_by: str = "system"


class GrantStatusChange(BaseModel):
    by: str = Field(..., min_length=1)
    reason: str = ""


class GrantScopeChange(BaseModel):
    by: str = Field(..., min_length=1)
    add: list[str] = Field(default_factory=list)
    remove: list[str] = Field(default_factory=list)


class GrantResponse(BaseModel):
    id: str
    voter_id: str
    election_id: str
    status: str
    position_ids: list[str]
    votes_cast: int
    voting_progress: float
    last_voted_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
