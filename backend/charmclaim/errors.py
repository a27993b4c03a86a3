"""
Error taxonomy for the claim protocol.

Every expected failure is a ``ClaimError`` carrying the HTTP status, a stable
machine-readable reason code and a safe human message. The API layer turns
these into JSON responses in one place (see ``charmclaim.main``).
"""

import math
import time


class ConfigurationError(RuntimeError):
    """Required server configuration is missing. Raised at startup only."""


class ClaimError(Exception):
    status_code: int = 400
    reason: str = "claim_error"
    message: str = "Claim failed"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidCode(ClaimError):
    reason = "invalid_code"
    message = "Invalid code"


class AlreadyClaimed(ClaimError):
    reason = "already_claimed"
    message = "Code already claimed"


class InvalidChallenge(ClaimError):
    reason = "invalid_challenge"
    message = "Invalid challenge"


class ChallengeExpired(ClaimError):
    reason = "challenge_expired"
    message = "Challenge expired"


class ChallengeMismatch(ClaimError):
    status_code = 403
    reason = "challenge_mismatch"
    message = "Challenge was issued to another account"


class ChallengeIntegrityError(ClaimError):
    reason = "challenge_integrity"
    message = "Challenge mismatch"


class InvalidSignature(ClaimError):
    reason = "invalid_signature"
    message = "Invalid signature"


class Unauthenticated(ClaimError):
    status_code = 401
    reason = "unauthenticated"
    message = "Authentication required"


class InternalError(ClaimError):
    status_code = 500
    reason = "internal_error"
    message = "Internal Server Error"


class RateLimited(ClaimError):
    status_code = 429
    reason = "rate_limited"
    message = "Rate limit exceeded"

    def __init__(self, reset_at: int, message: str | None = None):
        super().__init__(message)
        self.reset_at = reset_at  # epoch milliseconds

    def retry_after_seconds(self, now_ms: int | None = None) -> int:
        """Seconds until the window resets, rounded up and never negative."""
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return max(0, math.ceil((self.reset_at - now_ms) / 1000))
