"""
Persistence operations for units, challenges, ownerships and abuse events.

The two state transitions of the protocol (challenge consumption and unit
claim) are conditional UPDATE statements checked by row count, so racing
callers cannot both win. Those two only flush and leave the transaction to
the caller. The remaining writers (unit provisioning, challenge creation,
abuse events, cleanup) commit their own work.
"""

from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from charmclaim.models import (
    UNIT_AVAILABLE,
    UNIT_CLAIMED,
    AbuseEvent,
    ClaimChallenge,
    Ownership,
    PhysicalUnit,
)
from charmclaim.services.crypto_utils import CodeHasher, generate_secure_salt


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def find_unit_by_code_hash(db: Session, code_hash: str) -> PhysicalUnit | None:
    return db.query(PhysicalUnit).filter(PhysicalUnit.code_hash == code_hash).first()


def create_unit(db: Session, hasher: CodeHasher, raw_code: str, character_id: str) -> PhysicalUnit:
    """
    Provision a redeemable unit for a raw code.

    Raises ValueError if a unit with the same code already exists.
    """
    unit = PhysicalUnit(
        character_id=character_id,
        code_hash=hasher.hash(raw_code),
        secure_salt=generate_secure_salt(),
    )
    db.add(unit)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValueError("Unit already exists for this code")
    db.refresh(unit)
    return unit


def create_challenge(
    db: Session,
    code_hash: str,
    nonce: str,
    timestamp: str,
    challenge_digest: str,
    expires_at: datetime,
    user_id: str | None = None,
) -> ClaimChallenge:
    challenge = ClaimChallenge(
        code_hash=code_hash,
        nonce=nonce,
        timestamp=timestamp,
        challenge_digest=challenge_digest,
        expires_at=expires_at,
        user_id=user_id,
    )

    db.add(challenge)
    db.commit()
    db.refresh(challenge)

    return challenge


def get_challenge_by_id(db: Session, challenge_id: str) -> ClaimChallenge | None:
    return db.query(ClaimChallenge).filter(ClaimChallenge.id == challenge_id).first()


def consume_challenge(db: Session, challenge_id: str, now: datetime | None = None) -> bool:
    """
    Mark a challenge consumed if it is still pending and unexpired.

    Returns False when another caller consumed it first or it has expired.
    """
    now = now or utcnow()
    updated = (
        db.query(ClaimChallenge)
        .filter(
            ClaimChallenge.id == challenge_id,
            ClaimChallenge.consumed == False,  # noqa: E712
            ClaimChallenge.expires_at >= now,
        )
        .update({"consumed": True, "consumed_at": now}, synchronize_session=False)
    )
    db.flush()
    return updated == 1


def claim_unit_and_create_ownership(
    db: Session, unit_id: str, user_id: str, now: datetime | None = None
) -> Ownership | None:
    """
    Transition a unit from available to claimed and record the ownership.

    Returns None when the unit is no longer available. Nothing is written in
    that case.
    """
    now = now or utcnow()
    updated = (
        db.query(PhysicalUnit)
        .filter(PhysicalUnit.id == unit_id, PhysicalUnit.status == UNIT_AVAILABLE)
        .update(
            {"status": UNIT_CLAIMED, "claimed_by": user_id, "claimed_at": now},
            synchronize_session=False,
        )
    )
    if updated != 1:
        return None

    character_id = (
        db.query(PhysicalUnit.character_id).filter(PhysicalUnit.id == unit_id).scalar()
    )
    ownership = Ownership(
        user_id=user_id,
        character_id=character_id,
        unit_id=unit_id,
        source="claim",
        claimed_at=now,
    )
    db.add(ownership)
    db.flush()
    return ownership


def list_ownerships_by_user(db: Session, user_id: str) -> list[Ownership]:
    return (
        db.query(Ownership)
        .filter(Ownership.user_id == user_id)
        .order_by(Ownership.claimed_at.desc())
        .all()
    )


def record_abuse_event(db: Session, event_type: str, actor_ref: str, metadata: dict | None) -> AbuseEvent:
    event = AbuseEvent(type=event_type, actor_ref=actor_ref, event_metadata=metadata)
    db.add(event)
    db.commit()
    return event


def cleanup_expired_challenges(db: Session) -> int:
    """Delete expired challenges. Returns count of deleted rows."""
    result = (
        db.query(ClaimChallenge)
        .filter(ClaimChallenge.expires_at < utcnow())
        .delete(synchronize_session=False)
    )
    db.commit()
    return result
