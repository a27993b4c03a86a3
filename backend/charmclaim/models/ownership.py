import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from charmclaim.database import Base


class Ownership(Base):
    __tablename__ = "ownerships"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    character_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # One ownership per unit, enforced by the database as well as by the claim CAS
    unit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("physical_units.id"), unique=True, nullable=False
    )
    source: Mapped[str] = mapped_column(String(20), default="claim", nullable=False)

    claimed_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC).replace(tzinfo=None), nullable=False
    )
