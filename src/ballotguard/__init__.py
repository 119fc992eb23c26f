"""Ballotguard: vote integrity and election lifecycle engine."""

from ballotguard.audit.risk import RiskAssessment, assess_risk
from ballotguard.elections.phases import phase_at
from ballotguard.secret_codes.generator import generate_code, hash_code, validate_format

__all__ = [
    "RiskAssessment",
    "assess_risk",
    "phase_at",
    "generate_code",
    "hash_code",
    "validate_format",
]
__version__ = "0.1.0"
