"""Create physical_units, claim_challenges, ownerships and abuse_events tables

Revision ID: 0001
Revises:
Create Date: 2026-10-16

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "physical_units",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("character_id", sa.String(64), nullable=False),
        sa.Column("code_hash", sa.String(64), unique=True, nullable=False),
        sa.Column("secure_salt", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("claimed_by", sa.String(64), nullable=True),
        sa.Column("claimed_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_physical_units_character_id", "physical_units", ["character_id"])

    op.create_table(
        "claim_challenges",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("code_hash", sa.String(64), nullable=False),
        sa.Column("nonce", sa.String(64), unique=True, nullable=False),
        sa.Column("timestamp", sa.String(20), nullable=False),
        sa.Column("challenge_digest", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("expires_at", sa.DateTime, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("consumed", sa.Boolean, default=False, nullable=False),
        sa.Column("consumed_at", sa.DateTime, nullable=True),
    )
    op.create_index("ix_claim_challenges_code_hash", "claim_challenges", ["code_hash"])
    op.create_index("ix_claim_challenges_expires_at", "claim_challenges", ["expires_at"])

    op.create_table(
        "ownerships",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("character_id", sa.String(64), nullable=False),
        sa.Column(
            "unit_id",
            sa.String(36),
            sa.ForeignKey("physical_units.id"),
            unique=True,
            nullable=False,
        ),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("claimed_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_ownerships_user_id", "ownerships", ["user_id"])

    op.create_table(
        "abuse_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("actor_ref", sa.String(64), nullable=False),
        sa.Column("event_metadata", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_abuse_events_type", "abuse_events", ["type"])
    op.create_index("ix_abuse_events_actor_ref", "abuse_events", ["actor_ref"])


def downgrade() -> None:
    op.drop_index("ix_abuse_events_actor_ref", table_name="abuse_events")
    op.drop_index("ix_abuse_events_type", table_name="abuse_events")
    op.drop_table("abuse_events")

    op.drop_index("ix_ownerships_user_id", table_name="ownerships")
    op.drop_table("ownerships")

    op.drop_index("ix_claim_challenges_expires_at", table_name="claim_challenges")
    op.drop_index("ix_claim_challenges_code_hash", table_name="claim_challenges")
    op.drop_table("claim_challenges")

    op.drop_index("ix_physical_units_character_id", table_name="physical_units")
    op.drop_table("physical_units")
