import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from charmclaim.database import Base


class ClaimChallenge(Base):
    __tablename__ = "claim_challenges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code_hash: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    nonce: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    timestamp: Mapped[str] = mapped_column(String(20), nullable=False)  # epoch ms
    challenge_digest: Mapped[str] = mapped_column(String(64), nullable=False)

    # Account that requested the challenge, if the caller was signed in
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, default=None)

    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC).replace(tzinfo=None), nullable=False
    )
    consumed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, default=None)
