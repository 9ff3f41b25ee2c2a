"""Create payouts, payout_items and line_item_reversals tables

Revision ID: 20261019_000002
Revises: 20261019_000001
Create Date: 2026-10-19

Append-only payout history keyed by payout id, with a unique idempotency key,
one row per paid line item, and compensating entries for reversals.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261019_000002"
down_revision: Union[str, None] = "20261019_000001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "payouts",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("supplier_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("idempotency_key", sa.String(128), nullable=False),
        sa.Column("request_fingerprint", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("reversed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["supplier_id"],
            ["suppliers.id"],
            name="fk_payouts_supplier_id",
            ondelete="NO ACTION",
        ),
        sa.UniqueConstraint("idempotency_key", name="uq_payouts_idempotency_key"),
    )
    op.create_index("ix_payouts_supplier_id", "payouts", ["supplier_id"])
    op.create_index("ix_payouts_idempotency_key", "payouts", ["idempotency_key"])

    op.create_table(
        "payout_items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("payout_id", sa.String(36), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["payout_id"], ["payouts.id"], name="fk_payout_items_payout_id", ondelete="NO ACTION"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], name="fk_payout_items_order_id", ondelete="NO ACTION"),
        sa.ForeignKeyConstraint(["item_id"], ["line_items.id"], name="fk_payout_items_item_id", ondelete="NO ACTION"),
        # A line item is paid by at most one payout
        sa.UniqueConstraint("order_id", "item_id", name="uq_payout_items_line_item"),
    )
    op.create_index("ix_payout_items_payout_id", "payout_items", ["payout_id"])

    op.create_table(
        "line_item_reversals",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("supplier_id", sa.Integer(), nullable=False),
        sa.Column("previous_state", sa.String(20), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payout_id", sa.String(36), nullable=True),
        sa.Column("reason", sa.String(500), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], name="fk_line_item_reversals_order_id", ondelete="NO ACTION"),
        sa.ForeignKeyConstraint(["item_id"], ["line_items.id"], name="fk_line_item_reversals_item_id", ondelete="NO ACTION"),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"], name="fk_line_item_reversals_supplier_id", ondelete="NO ACTION"),
        sa.ForeignKeyConstraint(["payout_id"], ["payouts.id"], name="fk_line_item_reversals_payout_id", ondelete="NO ACTION"),
        sa.UniqueConstraint("item_id", name="uq_line_item_reversals_item_id"),
    )
    op.create_index("ix_line_item_reversals_item_id", "line_item_reversals", ["item_id"])
    op.create_index("ix_line_item_reversals_supplier_id", "line_item_reversals", ["supplier_id"])

    with op.batch_alter_table("line_items") as batch_op:
        batch_op.create_foreign_key(
            "fk_line_items_payout_id",
            "payouts",
            ["payout_id"],
            ["id"],
            ondelete="NO ACTION",
        )


def downgrade() -> None:
    with op.batch_alter_table("line_items") as batch_op:
        batch_op.drop_constraint("fk_line_items_payout_id", type_="foreignkey")

    op.drop_index("ix_line_item_reversals_supplier_id", table_name="line_item_reversals")
    op.drop_index("ix_line_item_reversals_item_id", table_name="line_item_reversals")
    op.drop_table("line_item_reversals")
    op.drop_index("ix_payout_items_payout_id", table_name="payout_items")
    op.drop_table("payout_items")
    op.drop_index("ix_payouts_idempotency_key", table_name="payouts")
    op.drop_index("ix_payouts_supplier_id", table_name="payouts")
    op.drop_table("payouts")
