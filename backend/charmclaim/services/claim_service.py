"""
Code redemption: status check, challenge issuance and claim completion.

A claim is a challenge-response exchange. ``start_claim`` seals a fresh
(unit, nonce, timestamp) triple with the unit's secret salt; the client proves
it holds the code by signing that digest with the code; ``complete_claim``
checks every gate and then performs both state transitions in one transaction.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from charmclaim.config import settings
from charmclaim.errors import (
    AlreadyClaimed,
    ChallengeExpired,
    ChallengeIntegrityError,
    ChallengeMismatch,
    ClaimError,
    InternalError,
    InvalidChallenge,
    InvalidCode,
    InvalidSignature,
    Unauthenticated,
)
from charmclaim.models import UNIT_AVAILABLE, ClaimChallenge, PhysicalUnit
from charmclaim.services import claim_store
from charmclaim.services.abuse_logger import AbuseLogger
from charmclaim.services.crypto_utils import (
    CodeHasher,
    compute_challenge_digest,
    digests_match,
    generate_nonce,
    signature_matches,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class ClaimResult:
    character_id: str
    claimed_at: datetime


def _find_unit(db: Session, code_hash: str) -> PhysicalUnit:
    try:
        unit = claim_store.find_unit_by_code_hash(db, code_hash)
    except SQLAlchemyError as exc:
        raise InternalError() from exc
    if unit is None:
        raise InvalidCode()
    return unit


def _find_available_unit(db: Session, code_hash: str) -> PhysicalUnit:
    unit = _find_unit(db, code_hash)
    if unit.status != UNIT_AVAILABLE:
        raise AlreadyClaimed()
    return unit


def verify_code(db: Session, hasher: CodeHasher, raw_code: str) -> PhysicalUnit:
    """Read-only status check for a code. Raises InvalidCode for unknown codes."""
    return _find_unit(db, hasher.hash(raw_code))


def start_claim(
    db: Session,
    hasher: CodeHasher,
    raw_code: str,
    user_id: str | None = None,
) -> ClaimChallenge:
    """
    Issue a single-use challenge for the unit behind ``raw_code``.

    The challenge is bound to ``user_id`` when the caller is signed in.
    """
    code_hash = hasher.hash(raw_code)
    unit = _find_available_unit(db, code_hash)

    nonce = generate_nonce()
    timestamp = str(int(time.time() * 1000))
    challenge_digest = compute_challenge_digest(
        code_hash=code_hash,
        nonce=nonce,
        timestamp=timestamp,
        secure_salt=unit.secure_salt,
    )
    expires_at = claim_store.utcnow() + timedelta(seconds=settings.challenge_ttl_seconds)

    try:
        challenge = claim_store.create_challenge(
            db,
            code_hash=code_hash,
            nonce=nonce,
            timestamp=timestamp,
            challenge_digest=challenge_digest,
            expires_at=expires_at,
            user_id=user_id,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise InternalError() from exc

    logger.info(
        "challenge_issued",
        challenge_id=challenge.id,
        unit_id=unit.id,
        bound_to_user=user_id is not None,
    )
    return challenge


def _load_challenge(db: Session, challenge_id: str, code_hash: str) -> ClaimChallenge:
    try:
        challenge = claim_store.get_challenge_by_id(db, challenge_id)
    except SQLAlchemyError as exc:
        raise InternalError() from exc
    # A challenge only ever unlocks the unit it was issued for
    if challenge is None or challenge.code_hash != code_hash:
        raise InvalidChallenge()
    return challenge


def complete_claim(
    db: Session,
    hasher: CodeHasher,
    abuse_logger: AbuseLogger,
    *,
    raw_code: str,
    challenge_id: str,
    signature: str,
    user_id: str | None,
    client_ip: str | None = None,
) -> ClaimResult:
    """
    Verify a signed challenge and transfer the unit to ``user_id``.

    Every check happens before any write. The challenge consumption and the
    unit claim are committed together or not at all.
    """
    if not user_id:
        raise Unauthenticated()

    code_hash = hasher.hash(raw_code)
    challenge = _load_challenge(db, challenge_id, code_hash)

    now = claim_store.utcnow()
    if challenge.consumed or now > challenge.expires_at:
        raise ChallengeExpired()

    if challenge.user_id is not None and challenge.user_id != user_id:
        raise ChallengeMismatch()

    unit = _find_available_unit(db, code_hash)

    expected_digest = compute_challenge_digest(
        code_hash=code_hash,
        nonce=challenge.nonce,
        timestamp=challenge.timestamp,
        secure_salt=unit.secure_salt,
    )
    if not digests_match(expected_digest, challenge.challenge_digest):
        logger.warning("challenge_integrity_failed", challenge_id=challenge.id, unit_id=unit.id)
        raise ChallengeIntegrityError()

    if not signature_matches(raw_code, challenge.challenge_digest, signature):
        abuse_logger.log(
            "invalid-signature",
            actor_ref=user_id,
            metadata={"ip": client_ip, "challenge_id": challenge.id},
        )
        raise InvalidSignature()

    unit_id = unit.id
    try:
        if not claim_store.consume_challenge(db, challenge.id, now=now):
            raise ChallengeExpired()
        ownership = claim_store.claim_unit_and_create_ownership(db, unit_id, user_id, now=now)
        if ownership is None:
            raise AlreadyClaimed()
        result = ClaimResult(character_id=ownership.character_id, claimed_at=ownership.claimed_at)
        db.commit()
    except ClaimError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        raise AlreadyClaimed() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise InternalError() from exc

    logger.info("claim_completed", challenge_id=challenge_id, unit_id=unit_id)
    return result


def list_ownerships(db: Session, user_id: str):
    try:
        return claim_store.list_ownerships_by_user(db, user_id)
    except SQLAlchemyError as exc:
        raise InternalError() from exc
