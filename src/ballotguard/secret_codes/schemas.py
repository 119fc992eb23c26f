"""Pydantic schemas for secret code administration."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class IssueCodeRequest(BaseModel):
    voter_id: str = Field(..., min_length=1)
    code: Optional[str] = None
    issued_by: str = "system"


class IssueCodeResponse(BaseModel):
    id: str
    voter_id: str
    election_id: str
    code: str


class DeactivateCodeRequest(BaseModel):
    by: str = Field(..., min_length=1)
    reason: str = ""


class ReactivateCodeRequest(BaseModel):
    by: str = Field(..., min_length=1)


class SecretCodeResponse(BaseModel):
    id: str
    voter_id: str
    election_id: str
    attempts: int
    is_locked: bool
    locked_until: Optional[datetime] = None
    is_active: bool
    total_uses: int

    model_config = {"from_attributes": True}


class SecretCodeStats(BaseModel):
    total_codes: int
    active_codes: int
    locked_codes: int
    total_uses: int
    avg_uses: float
