from charmclaim.schemas.claim import (
    ChallengeResponse,
    ClaimResponse,
    CodeRequest,
    CompleteRequest,
    DevSessionRequest,
    DevSessionResponse,
    OwnershipResponse,
    VerifyResponse,
)

__all__ = [
    "ChallengeResponse",
    "ClaimResponse",
    "CodeRequest",
    "CompleteRequest",
    "DevSessionRequest",
    "DevSessionResponse",
    "OwnershipResponse",
    "VerifyResponse",
]
