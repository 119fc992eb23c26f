"""Pydantic schemas for audit log API responses."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class AuditEntryResponse(BaseModel):
    id: str
    created_at: datetime
    actor_id: str
    actor_role: Optional[str] = None
    action: str
    category: str
    resource_type: str
    resource_id: Optional[str] = None
    election_id: Optional[str] = None
    position_id: Optional[str] = None
    success: bool
    error_message: Optional[str] = None
    details: dict[str, Any] = {}
    ip_address: Optional[str] = None
    risk_score: int
    risk_level: str
    is_suspicious: bool
    entry_hash: str
    signature: str

    model_config = {"from_attributes": True}


class AuditStatistics(BaseModel):
    total: int
    successful: int
    failed: int
    high_risk: int
    unique_actors: int
    unique_ips: int
    success_rate: float


class AuditVerification(BaseModel):
    valid: bool
    entries_checked: int
    invalid_ids: list[str] = []
