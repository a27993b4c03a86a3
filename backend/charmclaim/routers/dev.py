import structlog
from fastapi import APIRouter, HTTPException

from charmclaim.auth import create_session_token
from charmclaim.config import settings
from charmclaim.schemas.claim import DevSessionRequest, DevSessionResponse

router = APIRouter()
logger = structlog.get_logger()


@router.post("/dev/session", response_model=DevSessionResponse, status_code=201)
async def create_dev_session(session_data: DevSessionRequest):
    """
    Mint a session token for an arbitrary user id (development only).

    Disabled unless DEV_AUTH_ENABLED is set.
    """
    if not settings.dev_auth_enabled:
        raise HTTPException(status_code=403, detail="Dev login disabled")

    token, expires_at = create_session_token(session_data.user_id)
    logger.info("dev_session_created")

    return DevSessionResponse(token=token, expires_at=expires_at)
