"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: str | None = None
branch_labels = None
depends_on = None

user_role = sa.Enum("ADMIN", "INVESTOR", name="userrole")
trust_line_state = sa.Enum("TRUSTED", "FROZEN", "UNFROZEN", name="trustlinestate")


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)]
    if updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)
        )
    return columns


def upgrade() -> None:
    # ── users ────────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("fiat_balance", sa.Numeric(19, 4), nullable=False),
        sa.Column("ledger_address", sa.String(64), nullable=False),
        sa.Column("ledger_secret", sa.String(512), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("fiat_balance >= 0", name="ck_users_fiat_balance_non_negative"),
        sa.UniqueConstraint("email"),
        sa.UniqueConstraint("ledger_address"),
    )

    # ── properties ───────────────────────────────────────────────────────────
    op.create_table(
        "properties",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("total_value", sa.Numeric(19, 4), nullable=False),
        sa.Column("total_supply", sa.BigInteger(), nullable=False),
        sa.Column("token_name", sa.String(20), nullable=False),
        sa.Column("token_currency_code", sa.String(40), nullable=False),
        sa.Column("issuer_address", sa.String(64), nullable=False),
        sa.Column("is_funded", sa.Boolean(), nullable=False),
        sa.Column("funded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_minted", sa.Boolean(), nullable=False),
        sa.Column("mint_tx_ref", sa.String(64), nullable=True),
        sa.Column("minted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("total_value > 0", name="ck_properties_total_value_positive"),
        sa.CheckConstraint("total_supply > 0", name="ck_properties_total_supply_positive"),
        sa.UniqueConstraint("token_currency_code"),
    )

    # ── investments (append-only) ────────────────────────────────────────────
    op.create_table(
        "investments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("property_id", sa.Uuid(), sa.ForeignKey("properties.id"), nullable=False),
        sa.Column("fiat_amount", sa.Numeric(19, 4), nullable=False),
        sa.Column("tokens_received", sa.BigInteger(), nullable=False),
        sa.Column("ledger_tx_ref", sa.String(64), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint("ledger_tx_ref"),
    )
    op.create_index("ix_investments_property_id", "investments", ["property_id"])
    op.create_index("ix_investments_user_property", "investments", ["user_id", "property_id"])

    # ── rent_distributions (append-only) ─────────────────────────────────────
    op.create_table(
        "rent_distributions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("property_id", sa.Uuid(), sa.ForeignKey("properties.id"), nullable=False),
        sa.Column("period", sa.String(32), nullable=True),
        sa.Column("rate_per_token", sa.Numeric(19, 6), nullable=False),
        sa.Column("calculated_total", sa.Numeric(19, 6), nullable=False),
        sa.Column("paid_total", sa.Numeric(19, 6), nullable=False),
        sa.Column("holder_count", sa.Integer(), nullable=False),
        sa.Column("failed_count", sa.Integer(), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint("property_id", "period", name="uq_rent_distributions_property_period"),
    )
    op.create_index("ix_rent_distributions_property_id", "rent_distributions", ["property_id"])

    # ── trust_lines ──────────────────────────────────────────────────────────
    op.create_table(
        "trust_lines",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("currency_code", sa.String(40), nullable=False),
        sa.Column("issuer_address", sa.String(64), nullable=False),
        sa.Column("state", trust_line_state, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "currency_code", name="uq_trust_lines_user_currency"),
    )


def downgrade() -> None:
    op.drop_table("trust_lines")
    op.drop_index("ix_rent_distributions_property_id", table_name="rent_distributions")
    op.drop_table("rent_distributions")
    op.drop_index("ix_investments_user_property", table_name="investments")
    op.drop_index("ix_investments_property_id", table_name="investments")
    op.drop_table("investments")
    op.drop_table("properties")
    op.drop_table("users")
    trust_line_state.drop(op.get_bind(), checkfirst=True)
    user_role.drop(op.get_bind(), checkfirst=True)
