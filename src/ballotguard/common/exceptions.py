"""Ballotguard exception hierarchy."""


class BallotguardError(Exception):
    """Base exception for all Ballotguard errors."""

    status_code = 400

    def __init__(self, message: str = "", code: str = "BALLOTGUARD_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class MissingFieldsError(BallotguardError):
    """Raised when a request lacks required ballot fields."""

    def __init__(self, message: str = "Missing required fields"):
        super().__init__(message, code="MISSING_FIELDS")


class ElectionNotFoundError(BallotguardError):
    status_code = 404

    def __init__(self, message: str = "Election not found"):
        super().__init__(message, code="NOT_FOUND")


class ElectionClosedError(BallotguardError):
    """Raised when the election is not accepting ballots."""

    status_code = 403

    def __init__(self, message: str = "Voting is not open for this election"):
        super().__init__(message, code="ELECTION_CLOSED")


# Authorization failures share a generic message so callers cannot tell
# which check rejected them.
CANNOT_VOTE = "Unable to cast vote"


class InvalidSecretCodeError(BallotguardError):
    status_code = 403

    def __init__(self, message: str = CANNOT_VOTE):
        super().__init__(message, code="INVALID_SECRET_CODE")


class SecretCodeLockedError(BallotguardError):
    status_code = 423

    def __init__(self, message: str = CANNOT_VOTE):
        super().__init__(message, code="LOCKED")


class AlreadyVotedError(BallotguardError):
    status_code = 409

    def __init__(self, message: str = CANNOT_VOTE):
        super().__init__(message, code="ALREADY_VOTED")


class NotEligibleError(BallotguardError):
    status_code = 403

    def __init__(self, message: str = CANNOT_VOTE):
        super().__init__(message, code="NOT_ELIGIBLE")


class InvalidCandidateError(BallotguardError):
    """Raised when the candidate is not an approved candidate for the position."""

    def __init__(self, message: str = "Candidate is not valid for this position"):
        super().__init__(message, code="INVALID_CANDIDATE")


class DuplicateVoteError(BallotguardError):
    """Raised when a ballot for the same (election, voter, position) already exists."""

    status_code = 409

    def __init__(self, message: str = "A vote has already been recorded for this position"):
        super().__init__(message, code="DUPLICATE_VOTE")


class RateLimitedError(BallotguardError):
    status_code = 429

    def __init__(self, message: str = "Too many requests", retry_after: int = 0):
        self.retry_after = retry_after
        super().__init__(message, code="RATE_LIMITED")


class InvalidAuthorizationError(BallotguardError):
    """Raised when a ballot authorization is forged or does not match the ballot."""

    status_code = 403

    def __init__(self, message: str = "Ballot authorization is not valid"):
        super().__init__(message, code="INVALID_AUTHORIZATION")


class VoteNotFoundError(BallotguardError):
    status_code = 404

    def __init__(self, message: str = "Vote not found"):
        super().__init__(message, code="NOT_FOUND")


class InvalidTransitionError(BallotguardError):
    """Raised when a vote cannot move from its current state to the requested one."""

    status_code = 409

    def __init__(self, message: str = "Transition not allowed"):
        super().__init__(message, code="INVALID_TRANSITION")


class SecretCodeNotFoundError(BallotguardError):
    status_code = 404

    def __init__(self, message: str = "Secret code not found"):
        super().__init__(message, code="NOT_FOUND")


class SecretCodeExistsError(BallotguardError):
    status_code = 409

    def __init__(self, message: str = "A secret code already exists for this voter"):
        super().__init__(message, code="CODE_EXISTS")


class InvalidCodeFormatError(BallotguardError):
    def __init__(self, message: str = "Secret code must be 6 uppercase letters or digits"):
        super().__init__(message, code="INVALID_FORMAT")


class GrantNotFoundError(BallotguardError):
    status_code = 404

    def __init__(self, message: str = "Eligibility grant not found"):
        super().__init__(message, code="NOT_FOUND")


class GrantExistsError(BallotguardError):
    status_code = 409

    def __init__(self, message: str = "Voter already holds a grant for this election"):
        super().__init__(message, code="GRANT_EXISTS")
