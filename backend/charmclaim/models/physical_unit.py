import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from charmclaim.database import Base

UNIT_AVAILABLE = "available"
UNIT_CLAIMED = "claimed"


class PhysicalUnit(Base):
    """
    One redeemable collectible.

    Only the keyed hash of the printed code is stored. ``secure_salt`` is a
    per-unit secret used to seal claim challenges and is never sent to clients.
    ``status`` moves from available to claimed exactly once.
    """

    __tablename__ = "physical_units"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    character_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)

    code_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    secure_salt: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[str] = mapped_column(String(16), default=UNIT_AVAILABLE, nullable=False)
    claimed_by: Mapped[str | None] = mapped_column(String(64), nullable=True, default=None)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, default=None)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC).replace(tzinfo=None), nullable=False
    )
