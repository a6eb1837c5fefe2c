"""initial schema

Revision ID: 202610180900
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610180900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("display_order", sa.Integer()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("name", name="uq_categories_name"),
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date_paid", sa.Date(), nullable=False),
        sa.Column("payment_method", sa.String(length=60), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column(
            "is_archived", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "is_reimbursed", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("reimbursed_at", sa.DateTime()),
        sa.Column("reimbursement_method", sa.String(length=60)),
        sa.Column("reimbursement_notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "amount_cents >= 0", name="ck_expenses_amount_non_negative"
        ),
    )
    op.create_index(
        "ix_expenses_user_date_paid", "expenses", ["user_id", "date_paid"]
    )

    op.create_table(
        "reimbursement_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expenses.id"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("reimbursed_at", sa.DateTime(), nullable=False),
        sa.Column("method", sa.String(length=60)),
        sa.Column("notes", sa.Text()),
        sa.Column(
            "is_retracted", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "amount_cents > 0", name="ck_reimbursement_payments_amount_positive"
        ),
    )
    op.create_index(
        "ix_reimbursement_payments_user_expense",
        "reimbursement_payments",
        ["user_id", "expense_id", "is_retracted"],
    )


def downgrade():
    op.drop_index(
        "ix_reimbursement_payments_user_expense",
        table_name="reimbursement_payments",
    )
    op.drop_table("reimbursement_payments")
    op.drop_index("ix_expenses_user_date_paid", table_name="expenses")
    op.drop_table("expenses")
    op.drop_table("categories")
