from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from charmclaim.auth import get_current_user_id, get_optional_user_id
from charmclaim.database import get_db
from charmclaim.middleware.rate_limit import get_real_client_ip, rate_limit
from charmclaim.schemas.claim import (
    ChallengeResponse,
    ClaimResponse,
    CodeRequest,
    CompleteRequest,
    VerifyResponse,
)
from charmclaim.services.abuse_logger import AbuseLogger, get_abuse_logger
from charmclaim.services.claim_service import complete_claim, start_claim, verify_code
from charmclaim.services.crypto_utils import CodeHasher

router = APIRouter()


def get_code_hasher(request: Request) -> CodeHasher:
    """The hasher built at startup from CODE_HASH_SECRET."""
    return request.app.state.code_hasher


@router.post(
    "/claim/verify",
    response_model=VerifyResponse,
    dependencies=[Depends(rate_limit("claim-verify", "rate_limit_verify"))],
)
async def verify(
    request: Request,
    body: CodeRequest,
    db: Session = Depends(get_db),
    hasher: CodeHasher = Depends(get_code_hasher),
):
    """
    Check whether a code is redeemable.

    Read-only: nothing is issued or changed.
    """
    unit = verify_code(db, hasher, body.code)
    return VerifyResponse(status=unit.status, character_id=unit.character_id)


@router.post(
    "/claim/start",
    response_model=ChallengeResponse,
    dependencies=[Depends(rate_limit("claim-start", "rate_limit_start"))],
)
async def start(
    request: Request,
    body: CodeRequest,
    user_id: str | None = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
    hasher: CodeHasher = Depends(get_code_hasher),
):
    """
    Issue a claim challenge for a code.

    The client proves possession of the code by returning
    HMAC-SHA256(key=code, msg=challengeDigest) to /claim/complete before the
    challenge expires.
    """
    challenge = start_claim(db, hasher, body.code, user_id=user_id)

    return ChallengeResponse(
        challenge_id=challenge.id,
        nonce=challenge.nonce,
        timestamp=challenge.timestamp,
        challenge_digest=challenge.challenge_digest,
        expires_at=challenge.expires_at,
    )


@router.post(
    "/claim/complete",
    response_model=ClaimResponse,
    dependencies=[Depends(rate_limit("claim-complete", "rate_limit_complete"))],
)
async def complete(
    request: Request,
    body: CompleteRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    hasher: CodeHasher = Depends(get_code_hasher),
    abuse_logger: AbuseLogger = Depends(get_abuse_logger),
):
    """
    Verify a signed challenge and transfer the unit to the signed-in account.
    """
    result = complete_claim(
        db,
        hasher,
        abuse_logger,
        raw_code=body.code,
        challenge_id=body.challenge_id,
        signature=body.signature,
        user_id=user_id,
        client_ip=get_real_client_ip(request),
    )

    return ClaimResponse(character_id=result.character_id, claimed_at=result.claimed_at)
