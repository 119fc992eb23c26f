"""Sealed ballot authorizations.

The recorder only accepts a :class:`BallotAuthorization`, and the only way
to obtain one is :func:`authorize_ballot`, which requires a passing secret
code check and a passing eligibility check for the same ballot. The seal is
an HMAC over the ballot identity, so a hand-built authorization is rejected.
"""

import hashlib
import hmac
import json
from dataclasses import dataclass

from ballotguard.common.exceptions import InvalidAuthorizationError
from ballotguard.eligibility.service import EligibilityCheck
from ballotguard.secret_codes.service import CodeCheck


@dataclass(frozen=True)
class BallotAuthorization:
    voter_id: str
    election_id: str
    position_id: str
    secret_code_id: str
    grant_id: str
    seal: str

    def _payload(self) -> bytes:
        return _canonical(
            self.voter_id, self.election_id, self.position_id,
            self.secret_code_id, self.grant_id,
        )


def _canonical(*fields: str) -> bytes:
    return json.dumps(list(fields), separators=(",", ":")).encode()


def _seal(key: str, payload: bytes) -> str:
    return hmac.new(key.encode(), payload, hashlib.sha256).hexdigest()


def authorize_ballot(
    code_check: CodeCheck, eligibility: EligibilityCheck, key: str,
) -> BallotAuthorization:
    """Combine two passing checks into a sealed authorization."""
    if not code_check.ok or not eligibility.ok:
        raise InvalidAuthorizationError("Both checks must pass before a ballot is authorized")
    same_ballot = (
        code_check.voter_id == eligibility.voter_id
        and code_check.election_id == eligibility.election_id
        and code_check.position_id == eligibility.position_id
    )
    if not same_ballot:
        raise InvalidAuthorizationError("Checks were made for different ballots")

    fields = (
        code_check.voter_id,
        code_check.election_id,
        code_check.position_id,
        code_check.secret_code_id,
        eligibility.grant_id,
    )
    return BallotAuthorization(*fields, seal=_seal(key, _canonical(*fields)))


def verify_authorization(authorization: BallotAuthorization, key: str) -> None:
    expected = _seal(key, authorization._payload())
    if not hmac.compare_digest(expected, authorization.seal):
        raise InvalidAuthorizationError()
