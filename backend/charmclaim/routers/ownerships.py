from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from charmclaim.auth import get_current_user_id
from charmclaim.database import get_db
from charmclaim.middleware.rate_limit import rate_limit
from charmclaim.schemas.claim import OwnershipResponse
from charmclaim.services.claim_service import list_ownerships

router = APIRouter()


@router.get(
    "/ownerships",
    response_model=list[OwnershipResponse],
    dependencies=[Depends(rate_limit("ownerships", "rate_limit_ownerships"))],
)
async def get_ownerships(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """List the characters claimed by the signed-in account, newest first."""
    return [
        OwnershipResponse(
            character_id=ownership.character_id,
            unit_id=ownership.unit_id,
            source=ownership.source,
            claimed_at=ownership.claimed_at,
        )
        for ownership in list_ownerships(db, user_id)
    ]
