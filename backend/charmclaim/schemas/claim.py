from datetime import UTC, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel


def _serialize_utc(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


# Naive datetimes in the database are UTC; render them with an explicit Z
UTCDateTime = Annotated[datetime, PlainSerializer(_serialize_utc, return_type=str)]


class CamelModel(BaseModel):
    """Wire models use camelCase keys and also accept snake_case on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CodeRequest(CamelModel):
    code: str = Field(..., min_length=1, max_length=128, description="Code printed on the unit")


class VerifyResponse(CamelModel):
    status: Literal["available", "claimed"]
    character_id: str


class ChallengeResponse(CamelModel):
    challenge_id: str
    nonce: str
    timestamp: str
    challenge_digest: str
    expires_at: UTCDateTime


class CompleteRequest(CamelModel):
    code: str = Field(..., min_length=1, max_length=128)
    challenge_id: str = Field(..., min_length=1, max_length=64)
    signature: str = Field(
        ..., min_length=1, max_length=128, description="HMAC-SHA256(key=code, msg=challengeDigest), hex"
    )


class ClaimResponse(CamelModel):
    character_id: str
    claimed_at: UTCDateTime


class OwnershipResponse(CamelModel):
    character_id: str
    unit_id: str
    source: str
    claimed_at: UTCDateTime


class DevSessionRequest(CamelModel):
    user_id: str = Field(..., min_length=1, max_length=64)


class DevSessionResponse(CamelModel):
    token: str
    expires_at: UTCDateTime
